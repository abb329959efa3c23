"""Cargo version requirement parsing and matching."""

import re
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

from .errors import InvalidVersionRequirement

_COMPARATOR = re.compile(
    r"""
    ^\s*(?P<op>=|>=|<=|>|<|~|\^)?\s*
    (?P<major>\d+|\*|x|X)
    (?:\.(?P<minor>\d+|\*|x|X)
        (?:\.(?P<patch>\d+|\*|x|X)
            (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
            (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
        )?
    )?\s*$
    """,
    re.VERBOSE,
)

_WILDCARDS = {"*", "x", "X"}


@dataclass
class Comparator:
    """One comma-separated clause of a requirement, e.g. ``>=1.2``."""

    op: str
    major: int | None  # None for a bare ``*``
    minor: int | None = None
    patch: int | None = None
    pre: str | None = None

    def triple(self) -> tuple[int, int, int]:
        return (self.major or 0, self.minor or 0, self.patch or 0)

    def version(self) -> Version | None:
        text = ".".join(str(part) for part in self.triple())
        if self.pre:
            text += f"-{self.pre}"
        try:
            return Version(text)
        except InvalidVersion:
            return None

    def matches_release(self, v: tuple[int, int, int]) -> bool:
        """Check a version triple against this comparator."""
        op = self.op
        if self.pre:
            # A release sorts after all of its own pre-releases
            if op == "=":
                return False
            if op == ">":
                op = ">="
            elif op == "<=":
                op = "<"
        return _compare(op, self.major, self.minor, self.patch, v)


def _compare(op: str, major, minor, patch, v: tuple[int, int, int]) -> bool:
    if major is None:
        return True
    if op == "=":
        if minor is None:
            return v[0] == major
        if patch is None:
            return v[:2] == (major, minor)
        return v == (major, minor, patch)
    if op == ">":
        if minor is None:
            return v[0] > major
        if patch is None:
            return v[:2] > (major, minor)
        return v > (major, minor, patch)
    if op == ">=":
        return v >= (major, minor or 0, patch or 0)
    if op == "<":
        return v < (major, minor or 0, patch or 0)
    if op == "<=":
        if minor is None:
            return v[0] <= major
        if patch is None:
            return v[:2] <= (major, minor)
        return v <= (major, minor, patch)
    if op == "~":
        if minor is None:
            return v[0] == major
        if patch is None:
            return v[:2] == (major, minor)
        return v[:2] == (major, minor) and v >= (major, minor, patch)
    # caret
    if minor is None:
        return v[0] == major
    if patch is None:
        if major > 0:
            return v[0] == major and v[:2] >= (major, minor)
        return v[:2] == (0, minor)
    if major > 0:
        return v[0] == major and v >= (major, minor, patch)
    if minor > 0:
        return v[:2] == (0, minor) and v >= (0, minor, patch)
    return v == (0, 0, patch)


@dataclass
class VersionReq:
    """A parsed Cargo version requirement."""

    text: str
    comparators: list[Comparator]

    def matches(self, version: str | Version) -> bool:
        """Check whether a published version satisfies the requirement."""
        if not isinstance(version, Version):
            try:
                version = Version(version)
            except InvalidVersion:
                return False

        release = tuple((version.release + (0, 0, 0))[:3])
        if not version.is_prerelease:
            return all(c.matches_release(release) for c in self.comparators)

        # Pre-releases only match when the requirement opts in for that exact triple
        if not any(c.pre and c.triple() == release for c in self.comparators):
            return False
        for comparator in self.comparators:
            if comparator.pre and comparator.triple() == release:
                bound = comparator.version()
                if bound is None or not _compare_full(comparator.op, version, bound):
                    return False
            elif not comparator.matches_release(release):
                return False
        return True

    def __str__(self) -> str:
        return self.text


def _compare_full(op: str, version: Version, bound: Version) -> bool:
    if op == "=":
        return version == bound
    if op == ">":
        return version > bound
    if op == "<":
        return version < bound
    if op == "<=":
        return version <= bound
    return version >= bound


def _parse_comparator(text: str, requirement: str) -> Comparator:
    match = _COMPARATOR.match(text)
    if not match:
        raise InvalidVersionRequirement(f"Invalid version requirement `{requirement}`")

    op = match.group("op") or "^"
    parts = [match.group("major"), match.group("minor"), match.group("patch")]
    numbers: list[int | None] = []
    wildcard_seen = False
    for part in parts:
        if part is None or part in _WILDCARDS:
            if part is not None:
                wildcard_seen = True
            numbers.append(None)
            continue
        if wildcard_seen:
            raise InvalidVersionRequirement(
                f"Invalid version requirement `{requirement}`: "
                "version components cannot follow a wildcard"
            )
        numbers.append(int(part))

    if wildcard_seen:
        if match.group("op") not in (None, "="):
            raise InvalidVersionRequirement(
                f"Invalid version requirement `{requirement}`: "
                f"wildcards cannot be combined with `{match.group('op')}`"
            )
        # `1.*` and `1.2.*` behave like the partial exact forms
        op = "="

    return Comparator(
        op=op,
        major=numbers[0],
        minor=numbers[1],
        patch=numbers[2],
        pre=match.group("pre"),
    )


def parse_requirement(text: str) -> VersionReq:
    """Parse a Cargo version requirement such as ``^1.2, <1.5``.

    Args:
        text: Requirement as written by the user or in a manifest

    Returns:
        The parsed requirement

    Raises:
        InvalidVersionRequirement: If the text is not valid Cargo syntax
    """
    stripped = text.strip()
    if not stripped:
        raise InvalidVersionRequirement("Version requirement cannot be empty")

    comparators = [_parse_comparator(part, stripped) for part in stripped.split(",")]
    return VersionReq(text=stripped, comparators=comparators)


def validate_requirement(text: str) -> str:
    """Return ``text`` stripped, raising if it is not a valid requirement."""
    return parse_requirement(text).text


def is_prerelease(version: str) -> bool:
    """Whether a semver version string carries a pre-release tag."""
    return "-" in version.split("+", 1)[0]
