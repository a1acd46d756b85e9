"""Peer requirement collection across workspace members."""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from versioning.models import PeerRequirement, RequirementGroup, WorkspaceMember

logger = logging.getLogger(__name__)


def collect(members: Iterable[WorkspaceMember], ignore: Iterable[str] = ()) -> Dict[str, RequirementGroup]:
    """Group every declared peer requirement by dependency name.

    Groups keep discovery order. A member contributes one entry per peer it
    declares, so identical ranges from several members stay separate
    entries (each with its own ``required_by``).

    Args:
        members: Workspace members, root included.
        ignore: Dependency names to leave out entirely.
    """
    skipped = set(ignore)
    groups: Dict[str, RequirementGroup] = {}
    for member in members:
        for dep, version_range in member.peer_dependencies.items():
            if dep in skipped:
                continue
            if not isinstance(version_range, str):
                logger.warning(
                    "Ignoring non-string peer range for %s declared by %s: %r",
                    dep, member.name, version_range,
                )
                continue
            groups.setdefault(dep, []).append(
                PeerRequirement(required_by=member.name, version_range=version_range)
            )
    logger.debug("Collected peer requirements for %d dependencies", len(groups))
    return groups
