"""Data models for peer requirements and their resolution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PackageManagerKind(Enum):
    """Package managers whose manifests can be prepared."""
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


class OutcomeKind(Enum):
    """How a resolved version was chosen."""
    EXACT_MATCH = "exact-match"
    INTERSECTION = "intersection"
    BEST_COMPROMISE = "best-compromise"
    HIGHEST_REQUIRED_FALLBACK = "highest-required-fallback"
    NO_VERSIONS_FALLBACK = "no-versions-fallback"
    HIGHEST_REQUIRED = "highest-required"


@dataclass(frozen=True)
class PeerRequirement:
    """One member's peer requirement on a dependency."""
    required_by: str
    version_range: str


# All requirements collected for a single dependency name.
RequirementGroup = List[PeerRequirement]

# Parsed package.json content.
Manifest = Dict[str, Any]


@dataclass
class WorkspaceMember:
    """A package participating in the workspace, the root included."""
    path: str
    name: str
    manifest: Manifest = field(default_factory=dict)

    @property
    def peer_dependencies(self) -> Dict[str, Any]:
        peers = self.manifest.get("peerDependencies")
        return peers if isinstance(peers, dict) else {}


@dataclass(frozen=True)
class ResolutionOutcome:
    """Resolution outcome for one dependency name."""
    dependency: str
    resolved_version: str
    has_conflict: bool
    strategy: OutcomeKind
    considered_version_count: int = 0


@dataclass(frozen=True)
class VersionListing:
    """Result of one registry lookup.

    ``error`` is set when the lookup failed; an empty ``versions`` with no
    error means the package exists but has nothing published.
    """
    name: str
    versions: List[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
