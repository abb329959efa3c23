"""Core data models for depedit."""

from dataclasses import dataclass, field
from pathlib import Path

DEPENDENCIES = "dependencies"
DEV_DEPENDENCIES = "dev-dependencies"
BUILD_DEPENDENCIES = "build-dependencies"


@dataclass
class RegistrySource:
    """A dependency fetched from a package registry."""

    registry: str | None = None  # None means the default registry


@dataclass
class PathSource:
    """A dependency on a package in a local directory."""

    path: Path


@dataclass
class GitSource:
    """A dependency fetched from a git repository."""

    repo: str
    branch: str | None = None
    tag: str | None = None
    rev: str | None = None

    def reference(self) -> str | None:
        return self.branch or self.tag or self.rev


Source = RegistrySource | PathSource | GitSource


@dataclass
class DependencySpec:
    """A crate reference parsed from the command line."""

    name: str
    version_req: str | None = None
    source_hint: Source = field(default_factory=RegistrySource)
    inline_features: list[str] = field(default_factory=list)


@dataclass
class Dependency:
    """A fully resolved dependency ready to be written to a manifest.

    ``optional`` and ``default_features`` are tri-state: ``None`` leaves
    whatever the manifest already says (or the Cargo default) untouched.
    """

    name: str
    source: Source = field(default_factory=RegistrySource)
    version_req: str | None = None
    rename: str | None = None
    optional: bool | None = None
    default_features: bool | None = None
    features: list[str] | None = None
    available_features: dict[str, list[str]] = field(default_factory=dict)

    def toml_key(self) -> str:
        """Key of this dependency in a dependency table."""
        return self.rename or self.name

    def path(self) -> Path | None:
        if isinstance(self.source, PathSource):
            return self.source.path
        return None

    def add_features(self, features: list[str]) -> None:
        """Append features, skipping ones already requested."""
        if self.features is None:
            self.features = []
        for feature in features:
            if feature not in self.features:
                self.features.append(feature)


@dataclass
class WorkspaceMember:
    """A package belonging to the same workspace as the edited manifest."""

    name: str
    version: str
    manifest_path: Path

    @property
    def directory(self) -> Path:
        return self.manifest_path.parent


@dataclass
class LatestDependency:
    """Newest published version of a crate as reported by a registry."""

    name: str
    version: str
    available_features: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class FeatureReport:
    """Features of a dependency that end up enabled or disabled."""

    activated: list[str]
    deactivated: list[str]


@dataclass
class Diagnostic:
    """A non-fatal message for the user."""

    code: str  # unrecognized-feature, inline-add-unstable, registry-ignored, dry-run
    message: str


@dataclass
class AddedDependency:
    """Progress event for a dependency written to a manifest."""

    dependency: Dependency
    section: list[str]
    optional: bool
    features: FeatureReport

    def display_version(self) -> str | None:
        if self.dependency.path() is not None:
            return "(local)"
        version = self.dependency.version_req
        if version is None:
            return None
        if version[:1].isdigit():
            return f"v{version}"
        return version


@dataclass
class RemovedDependency:
    """Progress event for a dependency dropped from a manifest."""

    name: str
    section: list[str]


@dataclass
class EditReport:
    """Outcome of an add or remove run."""

    manifest_path: Path
    original_content: str
    updated_content: str
    added: list[AddedDependency] = field(default_factory=list)
    removed: list[RemovedDependency] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    written: bool = False


def section_for(dev: bool = False, build: bool = False, target: str | None = None) -> list[str]:
    """Dependency table path for the selected section flags."""
    if dev:
        return [DEV_DEPENDENCIES]
    if build:
        return [BUILD_DEPENDENCIES]
    if target is not None:
        return ["target", target, DEPENDENCIES]
    return [DEPENDENCIES]


def describe_section(section: list[str]) -> str:
    if len(section) == 1:
        return section[0]
    return f"{section[2]} for target `{section[1]}`"
