"""Peer dependency conflict resolution.

For each dependency the resolver tries, in order: the single requirement
verbatim, a range intersection that pins one version, the highest published
version inside the intersection, the published version satisfying the most
requirements, and finally the "highest" raw requirement. Registry trouble is
never fatal; it only changes which of these steps produces the answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import OutcomeKind, RequirementGroup, ResolutionOutcome, VersionListing
from versioning.ranges import (
    WILDCARD,
    compile_range,
    highest_required,
    intersect_ranges,
    pick_max_satisfying,
    satisfies,
    sort_versions_desc,
)

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Resolve one version per dependency name.

    ``registry`` is anything with an ``async fetch(name) -> VersionListing``
    method, normally ``registry.npm.NpmRegistryClient``.
    """

    def __init__(self, registry):
        self._registry = registry

    async def resolve_all(self, groups: Dict[str, RequirementGroup]) -> Dict[str, ResolutionOutcome]:
        """Resolve every group; conflicting names are resolved concurrently.

        Returns:
            Outcomes keyed by dependency name, in the order of ``groups``.
        """
        outcomes: Dict[str, ResolutionOutcome] = {}
        pending = []
        for name, group in groups.items():
            if len(group) == 1:
                outcomes[name] = self.resolve_single(name, group)
            else:
                pending.append(name)

        if pending:
            resolved = await asyncio.gather(*(self.resolve(name, groups[name]) for name in pending))
            outcomes.update(zip(pending, resolved))

        return {name: outcomes[name] for name in groups}

    @staticmethod
    def resolve_single(name: str, group: RequirementGroup) -> ResolutionOutcome:
        """A lone requirement resolves to its own range."""
        return ResolutionOutcome(
            dependency=name,
            resolved_version=group[0].version_range,
            has_conflict=False,
            strategy=OutcomeKind.EXACT_MATCH,
        )

    async def resolve(self, name: str, group: RequirementGroup) -> ResolutionOutcome:
        """Resolve a single dependency from its requirement group."""
        if len(group) == 1:
            return self.resolve_single(name, group)

        ranges = [req.version_range for req in group]

        intersection = intersect_ranges(ranges)
        if intersection is not None and intersection.exact_version is not None:
            return ResolutionOutcome(
                dependency=name,
                resolved_version=intersection.exact_version,
                has_conflict=False,
                strategy=OutcomeKind.INTERSECTION,
            )

        logger.info("Resolving version conflict for %s", name)

        listing: Optional[VersionListing] = None
        if intersection is not None:
            listing = await self._fetch(name)
            if listing.ok:
                picked = pick_max_satisfying(listing.versions, intersection.spec)
                if picked is not None:
                    logger.info("  %s: %s satisfies every requirement (%s)", name, picked, intersection.spec)
                    return ResolutionOutcome(
                        dependency=name,
                        resolved_version=picked,
                        has_conflict=False,
                        strategy=OutcomeKind.INTERSECTION,
                        considered_version_count=len(listing.versions),
                    )

        logger.info("  No single version satisfies all requirements for %s; finding best compromise", name)
        if listing is None:
            listing = await self._fetch(name)

        if not listing.ok:
            return self._fallback(name, ranges, OutcomeKind.HIGHEST_REQUIRED_FALLBACK, 0)
        if not listing.versions:
            return self._fallback(name, ranges, OutcomeKind.NO_VERSIONS_FALLBACK, 0)

        version, satisfied = best_compromise(listing.versions, ranges)
        if version is not None:
            logger.info(
                "  Best compromise for %s: %s (satisfies %d/%d requirements, %.1f%%)",
                name, version, satisfied, len(ranges), satisfied / len(ranges) * 100,
            )
            return ResolutionOutcome(
                dependency=name,
                resolved_version=version,
                has_conflict=True,
                strategy=OutcomeKind.BEST_COMPROMISE,
                considered_version_count=len(listing.versions),
            )

        return self._fallback(name, ranges, OutcomeKind.HIGHEST_REQUIRED, len(listing.versions))

    async def _fetch(self, name: str) -> VersionListing:
        """Registry lookup that turns any client failure into an error listing."""
        try:
            return await self._registry.fetch(name)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Could not fetch versions for %s: %s", name, exc)
            return VersionListing(name=name, versions=[], error=str(exc) or type(exc).__name__)

    @staticmethod
    def _fallback(name: str, ranges: Sequence[str], kind: OutcomeKind, count: int) -> ResolutionOutcome:
        version = highest_required(ranges)
        logger.warning("  No compromise found for %s; using highest required version %s (%s)", name, version, kind.value)
        if is_debug_enabled(logger):
            logger.debug(
                "Fallback resolution",
                extra=extra_context(
                    event="resolution_fallback",
                    component="resolver",
                    dependency=name,
                    strategy=kind.value,
                    ranges=list(ranges),
                ),
            )
        return ResolutionOutcome(
            dependency=name,
            resolved_version=version,
            has_conflict=True,
            strategy=kind,
            considered_version_count=count,
        )


def best_compromise(versions: Sequence[str], ranges: Sequence[str]) -> Tuple[Optional[str], int]:
    """Find the published version satisfying the most requirements.

    Candidates are scored highest version first, so among equal scores the
    higher version wins. ``*`` always counts as satisfied; a range that
    cannot be parsed never does. Scoring stops at the first candidate that
    satisfies every requirement.

    Returns:
        (version, satisfied_count), or (None, 0) when nothing satisfies any
        requirement.
    """
    wildcard = [r.strip() == WILDCARD for r in ranges]
    specs = [None if wild else compile_range(r) for wild, r in zip(wildcard, ranges)]

    best: Optional[str] = None
    best_count = 0
    for version in sort_versions_desc(versions):
        count = sum(1 for wild, spec in zip(wildcard, specs) if wild or satisfies(version, spec))
        if count > best_count:
            best, best_count = version, count
        if count == len(ranges):
            break
    return best, best_count


def resolved_versions(outcomes: Dict[str, ResolutionOutcome]) -> Dict[str, str]:
    """Flatten outcomes to name -> resolved version."""
    return {name: outcome.resolved_version for name, outcome in outcomes.items()}


def conflicting(outcomes: Dict[str, ResolutionOutcome]) -> List[ResolutionOutcome]:
    """Outcomes that represent a real conflict."""
    return [o for o in outcomes.values() if o.has_conflict]
