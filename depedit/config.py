"""Runtime configuration loaded from the environment via pydantic-settings.

Every field can be set with a ``DEPEDIT_`` prefixed environment variable or a
``.env`` file in the working directory, e.g. ``DEPEDIT_OFFLINE=1`` or
``DEPEDIT_REGISTRIES='{"internal": "https://crates.example.com"}'``.
Command-line flags take precedence over anything configured here.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MANIFEST_NAME = "Cargo.toml"


class Settings(BaseSettings):
    """depedit settings."""

    model_config = SettingsConfigDict(
        env_prefix="DEPEDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Base URL of the default registry's web API
    registry_api_url: str = "https://crates.io"
    # Alternate registries by name, as used by ``--registry``
    registries: dict[str, str] = {}

    http_timeout: float = 30.0
    user_agent: str = "depedit/0.1.0 (manifest editor)"
    offline: bool = False

    @field_validator("registry_api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("registries")
    @classmethod
    def _strip_registry_slashes(cls, value: dict[str, str]) -> dict[str, str]:
        return {name: url.rstrip("/") for name, url in value.items()}

    def api_url_for(self, registry: str | None) -> str | None:
        """Web API base URL of ``registry``, or None if it is not configured."""
        if registry is None:
            return self.registry_api_url
        return self.registries.get(registry)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()
