"""
Semantic version parsing, constraint matching and minimal version selection.

Versions follow SemVer 2.0.0. Constraints use the npm-style range syntax
that package authors already know:

    1.2.3  =1.2.3  ==1.2.3     exact
    1  1.2  1.*  1.2.x  *      wildcards / partial versions
    ^1.2.3                     compatible with 1.x (left-most non-zero fixed)
    ~1.2.3                     patch-level changes only
    >=1.0.0, <2.0.0            comma-joined conjunction
    !=1.4.0                    exclusion

Selection is Minimal Version Selection: the oldest version that still
satisfies every requirement wins, which keeps resolution deterministic and
monotonic.
"""

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Iterable, List, Optional, Tuple, Union

from .exceptions import InvalidConstraintError, InvalidVersionError

_IDENT = r'(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)'

SEMVER_RE = re.compile(
    r'^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)'
    rf'(?:-({_IDENT}(?:\.{_IDENT})*))?'
    r'(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$'
)

_TERM_RE = re.compile(
    r'^(?P<op>\^|~|>=|<=|>|<|==|!=|=)?\s*'
    r'(?P<major>0|[1-9]\d*|[xX*])'
    r'(?:\.(?P<minor>0|[1-9]\d*|[xX*]))?'
    r'(?:\.(?P<patch>0|[1-9]\d*|[xX*]))?'
    rf'(?:-(?P<pre>{_IDENT}(?:\.{_IDENT})*))?'
    r'(?:\+[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*)?$'
)

_WILDCARDS = ('x', 'X', '*')

PrereleaseId = Union[int, str]


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """
    An immutable semantic version.

    Ordering follows SemVer precedence: build metadata is ignored, a
    prerelease sorts below its release, numeric prerelease identifiers sort
    below alphanumeric ones.
    """
    major: int
    minor: int
    patch: int
    prerelease: Tuple[PrereleaseId, ...] = ()
    build: str = field(default="", compare=False)

    @property
    def release(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _key(self):
        pre = tuple(
            (0, part, '') if isinstance(part, int) else (1, 0, part)
            for part in self.prerelease
        )
        # A release (no prerelease) outranks any prerelease of the same triple
        return (self.release, 0 if self.prerelease else 1, pre)

    def __lt__(self, other: 'SemVer') -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        if self.build:
            text += "+" + self.build
        return text


@dataclass(frozen=True)
class Comparator:
    """One primitive comparison against a concrete version."""
    op: str  # one of '=', '!=', '>', '>=', '<', '<='
    version: SemVer

    def test(self, version: SemVer) -> bool:
        if self.op == '=':
            return version == self.version
        if self.op == '!=':
            return version != self.version
        if self.op == '>':
            return version > self.version
        if self.op == '>=':
            return version >= self.version
        if self.op == '<':
            return version < self.version
        return version <= self.version

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class Constraint:
    """
    A parsed version constraint: a conjunction of comparators.

    An empty comparator tuple matches every release version.
    """
    raw: str
    comparators: Tuple[Comparator, ...] = ()

    def __str__(self) -> str:
        return self.raw


def _parse_prerelease(text: Optional[str]) -> Tuple[PrereleaseId, ...]:
    if not text:
        return ()
    return tuple(int(p) if p.isdigit() else p for p in text.split('.'))


def parse_version(version_str: str) -> SemVer:
    """
    Parse a version string, stripping a single leading 'v' (git tag style).

    Raises:
        InvalidVersionError: if the string is not valid semver
    """
    if not isinstance(version_str, str):
        raise InvalidVersionError(f"Invalid semver version: {version_str!r}")
    cleaned = version_str.strip()
    if cleaned.startswith('v'):
        cleaned = cleaned[1:]
    match = SEMVER_RE.match(cleaned)
    if not match:
        raise InvalidVersionError(f"Invalid semver version: '{version_str}'")
    major, minor, patch, pre, build = match.groups()
    return SemVer(
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        prerelease=_parse_prerelease(pre),
        build=build or "",
    )


def parse_version_tag(tag: str) -> Optional[SemVer]:
    """Parse a git tag as a version, returning None for non-semver tags."""
    try:
        return parse_version(tag)
    except InvalidVersionError:
        return None


def is_valid_semver(version: str) -> bool:
    """Strict check (no leading 'v') used by manifest and lock validation."""
    return isinstance(version, str) and bool(SEMVER_RE.match(version))


def _expand_term(term: str, raw: str) -> List[Comparator]:
    match = _TERM_RE.match(term)
    if not match:
        raise InvalidConstraintError(f"Invalid semver constraint: '{raw}'")

    op = match.group('op') or ''
    parts = [match.group('major'), match.group('minor'), match.group('patch')]
    pre = _parse_prerelease(match.group('pre'))

    # Count leading concrete components; anything after a wildcard is ignored
    concrete: List[int] = []
    for part in parts:
        if part is None or part in _WILDCARDS:
            break
        concrete.append(int(part))
    if pre and len(concrete) < 3:
        raise InvalidConstraintError(
            f"Invalid semver constraint: '{raw}' (prerelease needs a full version)"
        )

    if not concrete:
        if op in ('', '=', '==', '>=', '<=', '^', '~'):
            return []
        # '>*', '<*' and '!=*' can never match anything meaningful
        raise InvalidConstraintError(f"Invalid semver constraint: '{raw}'")

    major = concrete[0]
    minor = concrete[1] if len(concrete) > 1 else 0
    patch = concrete[2] if len(concrete) > 2 else 0
    base = SemVer(major, minor, patch, pre)
    full = len(concrete) == 3

    def bump(depth: int) -> SemVer:
        if depth == 0:
            return SemVer(major + 1, 0, 0)
        if depth == 1:
            return SemVer(major, minor + 1, 0)
        return SemVer(major, minor, patch + 1)

    if op == '^':
        if major > 0 or len(concrete) == 1:
            upper = bump(0)
        elif minor > 0 or len(concrete) == 2:
            upper = bump(1)
        else:
            upper = bump(2)
        return [Comparator('>=', base), Comparator('<', upper)]

    if op == '~':
        upper = bump(0) if len(concrete) == 1 else bump(1)
        return [Comparator('>=', base), Comparator('<', upper)]

    if op in ('', '=', '=='):
        if full:
            return [Comparator('=', base)]
        return [Comparator('>=', base), Comparator('<', bump(len(concrete) - 1))]

    if op == '!=':
        if not full:
            raise InvalidConstraintError(
                f"Invalid semver constraint: '{raw}' ('!=' needs a full version)"
            )
        return [Comparator('!=', base)]

    if op == '>=':
        return [Comparator('>=', base)]
    if op == '<':
        return [Comparator('<', base)]
    if op == '>':
        return [Comparator('>', base) if full else Comparator('>=', bump(len(concrete) - 1))]
    # '<='
    return [Comparator('<=', base) if full else Comparator('<', bump(len(concrete) - 1))]


def parse_constraint(constraint_str: str) -> Constraint:
    """
    Parse a constraint string such as "^1.0.0" or ">=1.0.0, <2.0.0".

    Raises:
        InvalidConstraintError: if any term is malformed
    """
    if not isinstance(constraint_str, str) or not constraint_str.strip():
        raise InvalidConstraintError(f"Invalid semver constraint: {constraint_str!r}")

    comparators: List[Comparator] = []
    for term in constraint_str.split(','):
        term = term.strip()
        if not term:
            raise InvalidConstraintError(f"Invalid semver constraint: '{constraint_str}'")
        comparators.extend(_expand_term(term, constraint_str))
    return Constraint(raw=constraint_str.strip(), comparators=tuple(comparators))


def is_valid_version_constraint(constraint: str) -> bool:
    try:
        parse_constraint(constraint)
    except InvalidConstraintError:
        return False
    return True


def satisfies(version: SemVer, constraint: Constraint) -> bool:
    """Check whether a version satisfies every comparator of a constraint."""
    if not all(c.test(version) for c in constraint.comparators):
        return False
    if not version.is_prerelease:
        return True
    # Prereleases only match when the constraint opts in on the same triple
    return any(
        c.version.is_prerelease and c.version.release == version.release
        for c in constraint.comparators
    )


def select_minimum(versions: Iterable[SemVer], constraint: Constraint) -> Optional[SemVer]:
    """Minimal Version Selection: lowest version satisfying the constraint."""
    for version in sorted(versions):
        if satisfies(version, constraint):
            return version
    return None


def select_minimum_for_all(
    versions: Iterable[SemVer],
    constraints: Iterable[Constraint],
) -> Optional[SemVer]:
    """Lowest version satisfying every constraint at once (diamond resolution)."""
    constraint_list = list(constraints)
    for version in sorted(versions):
        if all(satisfies(version, c) for c in constraint_list):
            return version
    return None
