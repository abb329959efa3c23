"""Version and feature lookups against a crate registry's web API."""

import logging
import re

import httpx
from packaging.version import InvalidVersion, Version

from .config import MANIFEST_NAME, Settings, get_settings
from .errors import (
    InvalidVersionRequirement,
    ManifestError,
    OfflineLookupError,
    UnknownRegistry,
    VersionLookupFailed,
)
from .manifest import Manifest
from .models import GitSource, LatestDependency
from .version_req import is_prerelease, parse_requirement

logger = logging.getLogger(__name__)

_GITHUB = re.compile(r"^(?:https?://|git@)github\.com[/:](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$")
_GITLAB = re.compile(r"^(?:https?://|git@)gitlab\.com[/:](?P<path>.+?)(?:\.git)?/?$")


def _features_of(release: dict) -> dict[str, list[str]]:
    features = release.get("features") or {}
    return {name: list(implied) for name, implied in features.items()}


def raw_manifest_url(source: GitSource) -> str | None:
    """URL serving the root manifest of a hosted git repository, if known."""
    reference = source.reference() or "HEAD"
    match = _GITHUB.match(source.repo)
    if match:
        return (
            f"https://raw.githubusercontent.com/{match['owner']}/{match['repo']}"
            f"/{reference}/{MANIFEST_NAME}"
        )
    match = _GITLAB.match(source.repo)
    if match:
        return f"https://gitlab.com/{match['path']}/-/raw/{reference}/{MANIFEST_NAME}"
    return None


class RegistryClient:
    """Client for a crates.io-compatible registry API."""

    def __init__(
        self,
        registry: str | None = None,
        offline: bool | None = None,
        settings: Settings | None = None,
        timeout: float | None = None,
    ):
        """Initialize the registry client.

        Args:
            registry: Named alternate registry, None for the default one
            offline: Refuse network access; defaults to the configured value
            settings: Settings to read endpoints from
            timeout: Request timeout in seconds
        """
        self.settings = settings or get_settings()
        self.registry = registry
        self.offline = self.settings.offline if offline is None else offline
        self.timeout = timeout or self.settings.http_timeout
        self._cache: dict[str, dict] = {}

        api_url = self.settings.api_url_for(registry)
        if api_url is None:
            raise UnknownRegistry(
                f"No API URL configured for registry `{registry}` "
                "(set DEPEDIT_REGISTRIES)"
            )
        self.api_url = api_url

    async def get_latest_dependency(
        self, name: str, allow_prerelease: bool = False
    ) -> LatestDependency:
        """Get the newest usable version of a crate.

        Args:
            name: Crate name in any spelling the registry accepts
            allow_prerelease: Consider pre-release versions as well

        Returns:
            Canonical name, chosen version and that version's features
        """
        if self.offline:
            raise OfflineLookupError(
                f"Unable to look up the latest version of `{name}` while offline; "
                f"specify a version with `{name}@<version>`"
            )

        metadata = await self._fetch_crate_metadata(name)
        if not metadata:
            raise VersionLookupFailed(f"The crate `{name}` could not be found in the registry")

        canonical = metadata.get("crate", {}).get("name", name)
        candidates = []
        for release in metadata.get("versions", []):
            number = release.get("num")
            if not isinstance(number, str) or release.get("yanked"):
                continue
            if not allow_prerelease and is_prerelease(number):
                continue
            try:
                candidates.append((Version(number), release))
            except InvalidVersion:
                continue  # Skip versions packaging cannot order

        if not candidates:
            raise VersionLookupFailed(f"No available versions exist for `{canonical}`")

        _, release = max(candidates, key=lambda candidate: candidate[0])
        logger.debug("Latest version of %s is %s", canonical, release["num"])
        return LatestDependency(
            name=canonical,
            version=release["num"],
            available_features=_features_of(release),
        )

    async def get_features(self, name: str, version_req: str) -> dict[str, list[str]]:
        """Features of the newest version matching ``version_req``.

        Feature data is informational, so lookup problems yield an empty
        table instead of an error.
        """
        if self.offline:
            logger.debug("Offline, not fetching features of %s", name)
            return {}

        try:
            requirement = parse_requirement(version_req)
            metadata = await self._fetch_crate_metadata(name)
        except (InvalidVersionRequirement, VersionLookupFailed) as e:
            logger.warning("Could not fetch features of %s: %s", name, e)
            return {}
        if not metadata:
            return {}

        matching = []
        for release in metadata.get("versions", []):
            number = release.get("num")
            if not isinstance(number, str) or release.get("yanked"):
                continue
            if not requirement.matches(number):
                continue
            try:
                matching.append((Version(number), release))
            except InvalidVersion:
                continue
        if not matching:
            return {}
        _, release = max(matching, key=lambda candidate: candidate[0])
        return _features_of(release)

    async def get_git_features(self, source: GitSource) -> dict[str, list[str]]:
        """Features declared by the root manifest of a git repository.

        Only repositories hosted on GitHub or GitLab are supported.
        """
        url = raw_manifest_url(source)
        if self.offline or url is None:
            return {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                response = await client.get(url, follow_redirects=True)
                if response.status_code == 404:
                    return {}
                response.raise_for_status()
            return Manifest.from_string(response.text, MANIFEST_NAME).features()
        except (httpx.HTTPError, ManifestError) as e:
            logger.warning("Could not fetch features from %s: %s", source.repo, e)
            return {}

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.settings.user_agent, "Accept": "application/json"}

    async def _fetch_crate_metadata(self, name: str) -> dict | None:
        """Fetch crate metadata from the registry API.

        Args:
            name: Name of the crate

        Returns:
            Crate metadata dict or None if not found
        """
        # Check cache first
        if name in self._cache:
            return self._cache[name]

        url = f"{self.api_url}/api/v1/crates/{name}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                response = await client.get(url)
                if response.status_code == 404:
                    return None
                response.raise_for_status()

                metadata = response.json()
                # Cache the result
                self._cache[name] = metadata
                return metadata

        except httpx.TimeoutException as e:
            raise VersionLookupFailed(f"Timeout fetching metadata for {name}") from e
        except httpx.HTTPStatusError as e:
            raise VersionLookupFailed(f"HTTP error fetching {name}: {e}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise VersionLookupFailed(f"Network error fetching {name}: {e}") from e
