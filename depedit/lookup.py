"""Selection of an already-declared dependency to reuse."""

import logging

from .manifest import Manifest
from .models import BUILD_DEPENDENCIES, DEPENDENCIES, DEV_DEPENDENCIES, Dependency

logger = logging.getLogger(__name__)

RANK_DEV = 0
RANK_BUILD = 1
RANK_TARGET = 2
RANK_RUNTIME = 3
RANK_EXISTING = 4

_SECTION_RANKS = {
    DEV_DEPENDENCIES: RANK_DEV,
    BUILD_DEPENDENCIES: RANK_BUILD,
    "target": RANK_TARGET,
    DEPENDENCIES: RANK_RUNTIME,
}


def section_rank(section: list[str], target_section: list[str]) -> int:
    """How strongly an entry in ``section`` should shape a new entry in
    ``target_section``. Higher wins."""
    if list(section) == list(target_section):
        return RANK_EXISTING
    return _SECTION_RANKS[section[0]]


def find_existing_dependency(
    manifest: Manifest, key: str, target_section: list[str]
) -> Dependency | None:
    """Best existing entry for ``key`` to base a new entry on.

    An entry in the target table always wins. Otherwise entries in other
    tables are preferred runtime, then target-specific, then build, then
    dev, so the same crate keeps the same version across tables.

    Args:
        manifest: Manifest to search
        key: Dependency key (rename or package name)
        target_section: Table the dependency is being written to

    Returns:
        The selected dependency or None if ``key`` is not declared
    """
    candidates = [
        (section_rank(section, target_section), section, dependency)
        for section, dependency in manifest.get_dependency_versions(key)
    ]
    if not candidates:
        return None

    rank, section, dependency = max(candidates, key=lambda candidate: candidate[0])
    logger.debug("Reusing %s from %s", key, ".".join(section))

    if target_section == [DEV_DEPENDENCIES] and rank != RANK_EXISTING:
        # dev-dependencies do not need a version next to a path, but keep one
        # the user wrote into the dev table themselves
        if dependency.path() is not None:
            dependency.version_req = None
        # dev-dependencies cannot be optional
        dependency.optional = None
    return dependency
