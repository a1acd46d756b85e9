"""Tests for conflict report building, rendering and export."""

import asyncio
import json

from resolution.resolver import ConflictResolver
from resolution.report import build_report, export_json, render_report
from versioning.models import OutcomeKind, PeerRequirement, ResolutionOutcome, VersionListing


def _groups():
    return {
        "react": [
            PeerRequirement("legacy-ui", "^16.0.0"),
            PeerRequirement("web", "^18.0.0"),
            PeerRequirement("admin", "^18.0.0"),
        ],
        "typescript": [PeerRequirement("web", "^5.0.0")],
    }


def _outcomes():
    return {
        "react": ResolutionOutcome("react", "18.2.0", True, OutcomeKind.BEST_COMPROMISE, 4),
        "typescript": ResolutionOutcome("typescript", "^5.0.0", False, OutcomeKind.EXACT_MATCH),
    }


class TestBuildReport:
    """Structured report contents."""

    def test_only_conflicts_reported(self):
        report = build_report(_groups(), _outcomes())

        assert report.conflict_count == 1
        entry = report.entries[0]
        assert entry.dependency == "react"
        assert entry.requirements == {"^16.0.0": ["legacy-ui"], "^18.0.0": ["web", "admin"]}
        assert entry.compatible == ["web", "admin"]
        assert entry.incompatible == ["legacy-ui"]
        assert entry.compatibility_percent == 67
        assert not report.fully_compatible

    def test_compatible_intersection_not_reported(self):
        class _Registry:
            async def fetch(self, name):
                return VersionListing(name=name, versions=["17.0.0", "17.2.0", "17.3.1"])

        groups = {"react": [PeerRequirement("a", "^17.0.0"), PeerRequirement("b", "^17.2.0")]}
        outcomes = asyncio.run(ConflictResolver(_Registry()).resolve_all(groups))

        report = build_report(groups, outcomes)

        assert outcomes["react"].resolved_version == "17.3.1"
        assert outcomes["react"].strategy is OutcomeKind.INTERSECTION
        assert report.conflict_count == 0
        assert report.fully_compatible

    def test_fallback_range_counts_verbatim_matches(self):
        groups = {"react": [PeerRequirement("a", "^16.0.0"), PeerRequirement("b", "^18.0.0")]}
        outcomes = {
            "react": ResolutionOutcome("react", "^18.0.0", True, OutcomeKind.HIGHEST_REQUIRED_FALLBACK),
        }

        entry = build_report(groups, outcomes).entries[0]

        assert entry.compatible == ["b"]
        assert entry.incompatible == ["a"]

    def test_to_dict(self):
        data = build_report(_groups(), _outcomes()).to_dict()

        assert data["conflict_count"] == 1
        conflict = data["conflicts"][0]
        assert conflict["strategy"] == "best-compromise"
        assert conflict["requirements"][1] == {"range": "^18.0.0", "required_by": ["web", "admin"]}
        assert conflict["incompatible"] == ["legacy-ui"]


class TestRenderReport:
    """Text rendering."""

    def test_no_conflicts(self):
        assert render_report(build_report({}, {})) == "No peer dependency conflicts detected"

    def test_conflict_lines(self):
        text = render_report(build_report(_groups(), _outcomes()))

        assert "Detected 1 peer dependency conflicts:" in text
        assert "legacy-ui requires react@^16.0.0" in text
        assert "2 packages require react@^18.0.0:" in text
        assert "-> Resolved to: 18.2.0 (best-compromise)" in text
        assert "Compatibility: 2/3 packages (67%)" in text
        assert "Incompatible with: legacy-ui" in text

    def test_long_lists_are_truncated(self):
        names = [f"pkg-{i}" for i in range(5)]
        groups = {"vue": [PeerRequirement(n, "^2.0.0") for n in names] + [PeerRequirement("x", "^3.0.0")]}
        outcomes = {"vue": ResolutionOutcome("vue", "3.3.4", True, OutcomeKind.BEST_COMPROMISE)}

        text = render_report(build_report(groups, outcomes))

        assert "pkg-0, pkg-1, pkg-2 and 2 more" in text


class TestExportJson:
    """JSON export."""

    def test_writes_report(self, tmp_path):
        target = tmp_path / "report.json"
        export_json(build_report(_groups(), _outcomes()), str(target))

        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["conflicts"][0]["dependency"] == "react"
