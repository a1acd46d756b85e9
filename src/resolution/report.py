"""Conflict reporting for resolved peer dependencies."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from versioning.models import RequirementGroup, ResolutionOutcome
from versioning.ranges import compile_range, satisfies

logger = logging.getLogger(__name__)

_PREVIEW = 3


@dataclass
class ConflictEntry:
    """Report line for one conflicting dependency."""

    dependency: str
    resolved_version: str
    strategy: str
    # range -> packages declaring it, in discovery order
    requirements: Dict[str, List[str]] = field(default_factory=dict)
    compatible: List[str] = field(default_factory=list)
    incompatible: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.compatible) + len(self.incompatible)

    @property
    def compatibility_percent(self) -> int:
        if not self.total:
            return 100
        return round(len(self.compatible) / self.total * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependency": self.dependency,
            "resolved_version": self.resolved_version,
            "strategy": self.strategy,
            "requirements": [
                {"range": version_range, "required_by": list(packages)}
                for version_range, packages in self.requirements.items()
            ],
            "compatible_count": len(self.compatible),
            "incompatible_count": len(self.incompatible),
            "incompatible": list(self.incompatible),
        }


@dataclass
class ConflictReport:
    """All conflicts detected in one run."""

    entries: List[ConflictEntry] = field(default_factory=list)

    @property
    def conflict_count(self) -> int:
        return len(self.entries)

    @property
    def fully_compatible(self) -> bool:
        return all(not e.incompatible for e in self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflict_count": self.conflict_count,
            "conflicts": [e.to_dict() for e in self.entries],
        }


def _is_compatible(resolved: str, version_range: str) -> bool:
    if resolved.strip() == version_range.strip():
        return True
    return satisfies(resolved, compile_range(version_range))


def build_report(
    groups: Dict[str, RequirementGroup],
    outcomes: Dict[str, ResolutionOutcome],
) -> ConflictReport:
    """Build the report for every outcome flagged as a conflict."""
    report = ConflictReport()
    for name, outcome in outcomes.items():
        if not outcome.has_conflict:
            continue
        entry = ConflictEntry(
            dependency=name,
            resolved_version=outcome.resolved_version,
            strategy=outcome.strategy.value,
        )
        for req in groups.get(name, []):
            entry.requirements.setdefault(req.version_range, []).append(req.required_by)
            if _is_compatible(outcome.resolved_version, req.version_range):
                entry.compatible.append(req.required_by)
            else:
                entry.incompatible.append(req.required_by)
        report.entries.append(entry)
    return report


def _preview(names: List[str]) -> str:
    shown = ", ".join(names[:_PREVIEW])
    if len(names) > _PREVIEW:
        shown += f" and {len(names) - _PREVIEW} more"
    return shown


def render_report(report: ConflictReport) -> str:
    """Human-readable summary of the report."""
    if not report.entries:
        return "No peer dependency conflicts detected"

    lines = [f"Detected {report.conflict_count} peer dependency conflicts:"]
    for entry in report.entries:
        lines.append("")
        lines.append(f"{entry.dependency}:")
        lines.append("  Required by:")
        for version_range, packages in entry.requirements.items():
            if len(packages) == 1:
                lines.append(f"    - {packages[0]} requires {entry.dependency}@{version_range}")
            else:
                lines.append(f"    - {len(packages)} packages require {entry.dependency}@{version_range}:")
                lines.append(f"      {_preview(packages)}")
        lines.append(f"  -> Resolved to: {entry.resolved_version} ({entry.strategy})")
        lines.append(
            f"  Compatibility: {len(entry.compatible)}/{entry.total} packages ({entry.compatibility_percent}%)"
        )
        if entry.incompatible:
            lines.append(f"  Incompatible with: {_preview(entry.incompatible)}")

    if not report.fully_compatible:
        lines.append("")
        lines.append("Some peer dependencies are not fully compatible with all packages.")
        lines.append("This could lead to runtime errors or unexpected behavior.")
    return "\n".join(lines)


def log_report(report: ConflictReport) -> None:
    """Write the rendered report to the log, one record per line."""
    level = logging.WARNING if report.entries else logging.INFO
    for line in render_report(report).splitlines():
        logger.log(level, line)


def export_json(report: ConflictReport, path: str) -> None:
    """Export the report to a JSON file.

    Raises:
        OSError: If the file cannot be written.
    """
    with open(path, "w", encoding="utf-8") as file:
        json.dump(report.to_dict(), file, ensure_ascii=False, indent=4)
    logger.info("Conflict report written to %s", path)
