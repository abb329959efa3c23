"""Transitive feature activation for a dependency."""

from collections import deque
from collections.abc import Iterable, Mapping

from .models import FeatureReport

DEFAULT_FEATURE = "default"


def _is_feature_reference(value: str) -> bool:
    # `dep:foo`, `foo/bar` and `foo?/bar` enable dependencies, not features of this crate
    return not value.startswith("dep:") and "/" not in value


def activated_features(
    requested: Iterable[str],
    default_enabled: bool,
    available: Mapping[str, Iterable[str]],
) -> FeatureReport:
    """Compute which features end up enabled.

    Args:
        requested: Features asked for explicitly
        default_enabled: Whether the ``default`` feature is active
        available: Feature name to the features it implies

    Returns:
        Sorted activated and deactivated features. ``default`` itself is
        never listed.
    """
    visited = set(requested)
    if default_enabled:
        visited.add(DEFAULT_FEATURE)

    queue = deque(sorted(visited))
    while queue:
        feature = queue.popleft()
        for implied in available.get(feature, ()):
            if _is_feature_reference(implied) and implied not in visited:
                visited.add(implied)
                queue.append(implied)

    visited.discard(DEFAULT_FEATURE)
    activated = sorted(visited)
    deactivated = sorted(
        name for name in available if name not in visited and name != DEFAULT_FEATURE
    )
    return FeatureReport(activated=activated, deactivated=deactivated)


def unrecognized_features(requested: Iterable[str], available: Mapping[str, Iterable[str]]) -> list[str]:
    """Requested features the dependency does not declare, sorted."""
    return sorted(set(requested) - set(available))
