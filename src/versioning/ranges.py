"""npm semver range helpers built on semantic_version.

Matching a concrete version against a range goes through
``semantic_version.NpmSpec``. Intersection needs to know whether a combined
range is empty or pins a single version, which NpmSpec does not expose, so
ranges are also desugared here into plain comparator sets (``>=``, ``>``,
``<``, ``<=``, ``=``) and reduced to lower/upper bounds.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import semantic_version

logger = logging.getLogger(__name__)

Comparator = Tuple[str, semantic_version.Version]
ComparatorSet = Tuple[Comparator, ...]

WILDCARD = "*"
_ZERO = semantic_version.Version("0.0.0")

_PARTIAL = re.compile(
    r"""^v?
    (?P<major>0|[1-9]\d*|[xX*])
    (?:\.(?P<minor>0|[1-9]\d*|[xX*]))?
    (?:\.(?P<patch>0|[1-9]\d*|[xX*]))?
    (?:-(?P<prerelease>[0-9A-Za-z.-]+))?
    (?:\+(?P<build>[0-9A-Za-z.-]+))?
    $""",
    re.VERBOSE,
)
_OPERATOR = re.compile(r"^(<=|>=|<|>|=|\^|~>|~|)(.*)$")
_HYPHEN = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_OPERATOR_GAP = re.compile(r"(<=|>=|<|>|=|\^|~>|~)\s+")
_BASE_VERSION = re.compile(r"\d+(?:\.\d+){0,2}")


def _version(major: int, minor: int = 0, patch: int = 0, prerelease: Tuple[str, ...] = ()) -> semantic_version.Version:
    return semantic_version.Version(major=major, minor=minor, patch=patch, prerelease=prerelease)


def _partial(text: str) -> Tuple[Optional[int], Optional[int], Optional[int], Tuple[str, ...]]:
    """Split a possibly partial version (``1``, ``1.2``, ``1.x``) into parts.

    Wildcard components come back as None; everything right of the first
    wildcard is a wildcard too.
    """
    m = _PARTIAL.match(text)
    if not m:
        raise ValueError(f"Invalid version in range: {text!r}")

    def _num(part: Optional[str]) -> Optional[int]:
        if part is None or part in ("x", "X", "*"):
            return None
        return int(part)

    major, minor, patch = _num(m.group("major")), _num(m.group("minor")), _num(m.group("patch"))
    if major is None:
        minor = None
    if minor is None:
        patch = None
    prerelease: Tuple[str, ...] = ()
    if m.group("prerelease") and patch is not None:
        prerelease = tuple(m.group("prerelease").split("."))
    return major, minor, patch, prerelease


def _desugar(op: str, text: str) -> List[Comparator]:
    """Turn one range token into primitive comparators."""
    major, minor, patch, pre = _partial(text)

    if major is None:
        if op in ("<", ">"):
            # "<*" and ">*" match nothing
            return [("<", _ZERO)]
        return []

    if op in ("", "="):
        if minor is None:
            return [(">=", _version(major)), ("<", _version(major + 1))]
        if patch is None:
            return [(">=", _version(major, minor)), ("<", _version(major, minor + 1))]
        return [("=", _version(major, minor, patch, pre))]

    lower = _version(major, minor or 0, patch or 0, pre)

    if op == "^":
        if major > 0 or minor is None:
            upper = _version(major + 1)
        elif minor > 0 or patch is None:
            upper = _version(0, minor + 1)
        else:
            upper = _version(0, 0, patch + 1)
        return [(">=", lower), ("<", upper)]

    if op in ("~", "~>"):
        upper = _version(major + 1) if minor is None else _version(major, minor + 1)
        return [(">=", lower), ("<", upper)]

    if op == ">=":
        return [(">=", lower)]
    if op == ">":
        if minor is None:
            return [(">=", _version(major + 1))]
        if patch is None:
            return [(">=", _version(major, minor + 1))]
        return [(">", lower)]
    if op == "<":
        return [("<", lower)]
    # "<="
    if minor is None:
        return [("<", _version(major + 1))]
    if patch is None:
        return [("<", _version(major, minor + 1))]
    return [("<=", lower)]


def _hyphen(low: str, high: str) -> List[Comparator]:
    comparators: List[Comparator] = []
    major, minor, patch, pre = _partial(low)
    if major is not None:
        comparators.append((">=", _version(major, minor or 0, patch or 0, pre)))
    major, minor, patch, pre = _partial(high)
    if major is not None:
        if minor is None:
            comparators.append(("<", _version(major + 1)))
        elif patch is None:
            comparators.append(("<", _version(major, minor + 1)))
        else:
            comparators.append(("<=", _version(major, minor, patch, pre)))
    return comparators


def normalize_range(raw: str) -> str:
    """Collapse whitespace and glue operators to their versions (``>= 1`` -> ``>=1``)."""
    text = " ".join((raw or "").split())
    text = _OPERATOR_GAP.sub(r"\1", text)
    return text.replace("~>", "~")


def parse_range(raw: str) -> List[ComparatorSet]:
    """Parse an npm range into alternatives of comparator sets.

    The result is a disjunction (``||``) of conjunctions; an empty
    conjunction accepts every version.

    Raises:
        ValueError: If the range is not valid npm semver syntax.
    """
    alternatives: List[ComparatorSet] = []
    for group in normalize_range(raw).split("||"):
        group = group.strip()
        m = _HYPHEN.match(group)
        if m:
            alternatives.append(tuple(_hyphen(m.group(1), m.group(2))))
            continue
        comparators: List[Comparator] = []
        for token in group.split():
            op, text = _OPERATOR.match(token).groups()
            comparators.extend(_desugar(op, text))
        alternatives.append(tuple(comparators))
    return alternatives


def _bounds(comparators: Iterable[Comparator]):
    """Reduce comparators to ((lower, inclusive), (upper, inclusive)) or None if empty."""
    lower: Tuple[semantic_version.Version, bool] = (_ZERO, True)
    upper: Optional[Tuple[semantic_version.Version, bool]] = None

    def _raise_lower(version, inclusive):
        nonlocal lower
        if version > lower[0] or (version == lower[0] and not inclusive):
            lower = (version, inclusive)

    def _drop_upper(version, inclusive):
        nonlocal upper
        if upper is None or version < upper[0] or (version == upper[0] and not inclusive):
            upper = (version, inclusive)

    for op, version in comparators:
        if op in (">=", "="):
            _raise_lower(version, True)
        elif op == ">":
            _raise_lower(version, False)
        if op in ("<=", "="):
            _drop_upper(version, True)
        elif op == "<":
            _drop_upper(version, False)

    if upper is not None:
        if lower[0] > upper[0]:
            return None
        if lower[0] == upper[0] and not (lower[1] and upper[1]):
            return None
    return lower, upper


def _pinned(comparators: ComparatorSet) -> Optional[semantic_version.Version]:
    bounds = _bounds(comparators)
    if bounds is None:
        return None
    (low, low_inclusive), upper = bounds
    if upper is not None and upper[1] and low_inclusive and upper[0] == low:
        return low
    return None


def _format(comparators: ComparatorSet) -> str:
    if not comparators:
        return ">=0.0.0"
    return " ".join(f"{op}{version}" for op, version in comparators)


@dataclass(frozen=True)
class RangeIntersection:
    """Satisfiable result of intersecting several ranges."""
    alternatives: Tuple[ComparatorSet, ...]

    @property
    def spec(self) -> str:
        """npm range string equivalent to the intersection."""
        return " || ".join(_format(alt) for alt in self.alternatives)

    @property
    def exact_version(self) -> Optional[str]:
        """The single version the intersection admits, if it pins one."""
        pinned = {_pinned(alt) for alt in self.alternatives}
        if len(pinned) == 1:
            version = pinned.pop()
            if version is not None:
                return str(version)
        return None


def intersect_ranges(ranges: Sequence[str]) -> Optional[RangeIntersection]:
    """Intersect npm ranges pairwise.

    ``*`` is read as ``>=0.0.0``. ``||`` alternatives are distributed, and
    alternatives that cannot be satisfied are dropped.

    Returns:
        The intersection, or None when a range is unparseable or no version
        can satisfy every range.
    """
    combined: List[ComparatorSet] = [()]
    for raw in ranges:
        text = ">=0.0.0" if raw.strip() == WILDCARD else raw
        try:
            alternatives = parse_range(text)
        except ValueError as exc:
            logger.debug("Range %r not usable for intersection: %s", raw, exc)
            return None
        combined = [
            left + right
            for left in combined
            for right in alternatives
            if _bounds(left + right) is not None
        ]
        if not combined:
            return None
    return RangeIntersection(tuple(combined))


def compile_range(raw: str) -> Optional[semantic_version.NpmSpec]:
    """Compile a range for matching; None when it cannot be parsed."""
    text = normalize_range(raw)
    if text in ("", "x", "X"):
        text = WILDCARD
    try:
        return semantic_version.NpmSpec(text)
    except ValueError:
        return None


def parse_version(value: str) -> Optional[semantic_version.Version]:
    """Parse a concrete version, tolerating a leading ``=`` or ``v``."""
    text = (value or "").strip().lstrip("=").strip()
    if text.startswith("v"):
        text = text[1:]
    try:
        return semantic_version.Version(text)
    except ValueError:
        return None


def satisfies(version: str, range_spec: Optional[semantic_version.NpmSpec]) -> bool:
    """True when ``version`` is a valid version matched by ``range_spec``."""
    if range_spec is None:
        return False
    parsed = parse_version(version)
    if parsed is None:
        return False
    return range_spec.match(parsed)


def sort_versions_desc(candidates: Iterable[str]) -> List[str]:
    """Valid semantic versions from ``candidates``, highest first."""
    parsed = []
    for v in candidates:
        try:
            parsed.append(semantic_version.Version(v))
        except ValueError:
            continue  # Skip invalid versions
    parsed.sort(reverse=True)
    return [str(v) for v in parsed]


def pick_max_satisfying(candidates: Iterable[str], range_str: str) -> Optional[str]:
    """Highest candidate matching ``range_str``, or None."""
    spec = compile_range(range_str)
    if spec is None:
        return None
    matching = []
    for v in candidates:
        try:
            ver = semantic_version.Version(v)
        except ValueError:
            continue
        if spec.match(ver):
            matching.append(ver)
    if not matching:
        return None
    return str(max(matching))


def _range_tier(raw: str) -> int:
    text = raw.strip()
    if text.startswith("^"):
        return 0
    if text.startswith("~"):
        return 1
    if text in (WILDCARD, "", "x", "X"):
        return 3
    return 2


def _range_base(raw: str) -> semantic_version.Version:
    m = _BASE_VERSION.search(raw)
    if not m:
        return _ZERO
    return semantic_version.Version.coerce(m.group(0))


def highest_required(ranges: Sequence[str]) -> str:
    """Pick the "highest" raw requirement without registry data.

    Exact versions win, greatest first. Otherwise caret ranges rank above
    tilde ranges, which rank above anything else (wildcards last); within a
    tier the higher base version wins and ties keep declaration order.
    """
    exact = [v for v in (parse_version(r) for r in ranges) if v is not None]
    if exact:
        return str(max(exact))

    ordered = sorted(ranges, key=_range_base, reverse=True)
    ordered.sort(key=_range_tier)
    return ordered[0]
