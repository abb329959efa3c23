"""Turning crate references into fully populated dependencies."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import MANIFEST_NAME
from .crate_spec import parse_features, parse_specs
from .errors import InvalidArguments, SelfDependency, UnstableFlagRequired
from .lookup import find_existing_dependency
from .manifest import Manifest
from .models import (
    DEV_DEPENDENCIES,
    Dependency,
    DependencySpec,
    Diagnostic,
    GitSource,
    PathSource,
    RegistrySource,
    WorkspaceMember,
    section_for,
)
from .registry import RegistryClient

logger = logging.getLogger(__name__)


class UnstableOption(str, Enum):
    """Gates accepted by ``-Z``."""

    GIT = "git"
    INLINE_ADD = "inline-add"


@dataclass
class AddOptions:
    """Everything the ``add`` command was asked to do."""

    crates: list[str]
    features: list[str] | None = None
    optional: bool | None = None
    default_features: bool | None = None
    rename: str | None = None
    registry: str | None = None
    dev: bool = False
    build: bool = False
    target: str | None = None
    git: str | None = None
    branch: str | None = None
    tag: str | None = None
    rev: str | None = None
    unstable: list[str] = field(default_factory=list)

    def section(self) -> list[str]:
        return section_for(self.dev, self.build, self.target)

    def unstable_enabled(self, option: UnstableOption) -> bool:
        return option.value in {getattr(flag, "value", flag) for flag in self.unstable}

    def requested_features(self) -> list[str] | None:
        if self.features is None:
            return None
        requested: list[str] = []
        for text in self.features:
            for feature in parse_features(text):
                if feature not in requested:
                    requested.append(feature)
        return requested

    def git_source(self) -> GitSource | None:
        if self.git is None:
            return None
        return GitSource(repo=self.git, branch=self.branch, tag=self.tag, rev=self.rev)

    def validate(self) -> None:
        """Reject flag combinations that cannot be honoured."""
        if not self.crates:
            raise InvalidArguments("At least one dependency must be specified")
        if sum([self.dev, self.build, self.target is not None]) > 1:
            raise InvalidArguments("`--dev`, `--build` and `--target` are mutually exclusive")
        if self.target is not None and not self.target.strip():
            raise InvalidArguments("Target specification may not be empty")
        if self.optional is not None and self.dev:
            raise InvalidArguments("`--optional` and `--no-optional` cannot be used with `--dev`")
        if self.registry is not None and self.git is not None:
            raise InvalidArguments("`--registry` cannot be used with `--git`")

        references = [ref for ref in (self.branch, self.tag, self.rev) if ref is not None]
        if references and self.git is None:
            raise InvalidArguments("`--branch`, `--tag` and `--rev` require `--git`")
        if len(references) > 1:
            raise InvalidArguments("Only one of `--branch`, `--tag` and `--rev` may be given")
        if self.git is not None and not self.unstable_enabled(UnstableOption.GIT):
            raise UnstableFlagRequired("`--git` is unstable and requires `-Z git`")


class DependencyResolver:
    """Resolves the crates of one ``add`` invocation against a manifest."""

    def __init__(
        self,
        manifest: Manifest,
        options: AddOptions,
        client: RegistryClient,
        members: list[WorkspaceMember] | None = None,
        cwd: Path | None = None,
        allow_paths: bool = True,
    ):
        self.manifest = manifest
        self.options = options
        self.client = client
        self.members = members or []
        self.cwd = cwd
        self.allow_paths = allow_paths
        self.section = options.section()
        self.diagnostics: list[Diagnostic] = []

    async def resolve_all(self) -> list[Dependency]:
        """Parse and resolve every crate of the invocation, in order.

        Nothing is looked up before all tokens have parsed successfully.
        """
        options = self.options
        if any(token.startswith("+") for token in options.crates) and not options.unstable_enabled(
            UnstableOption.INLINE_ADD
        ):
            self.diagnostics.append(
                Diagnostic("inline-add-unstable", "`+<feature>` is unstable and requires `-Z inline-add`")
            )

        specs = parse_specs(
            options.crates,
            self.cwd,
            git=options.git_source(),
            rename=options.rename,
            features=options.features,
            allow_paths=self.allow_paths,
        )
        dependencies = []
        for spec in specs:
            dependencies.append(await self.resolve(spec))
        return dependencies

    async def resolve(self, spec: DependencySpec) -> Dependency:
        """Resolve a single spec into a dependency."""
        if isinstance(spec.source_hint, PathSource):
            dependency = self._resolve_path(spec)
        elif spec.version_req is not None:
            dependency = self._populate(Dependency(name=spec.name, version_req=spec.version_req))
        else:
            dependency = await self._resolve_unversioned(spec)

        if self.options.registry:
            if isinstance(dependency.source, RegistrySource):
                dependency.source = RegistrySource(self.options.registry)
            else:
                self.diagnostics.append(
                    Diagnostic(
                        "registry-ignored",
                        f"`--registry` does not apply to `{dependency.name}`, which is not a registry dependency",
                    )
                )

        if spec.inline_features:
            dependency.add_features(spec.inline_features)

        path = dependency.path()
        if path is not None and path == self.manifest.directory:
            raise SelfDependency(
                f"Cannot add `{self.manifest.package_name()}` as a dependency to itself"
            )

        if not dependency.available_features:
            dependency.available_features = await self._available_features(dependency)
        return dependency

    def _populate(self, dependency: Dependency) -> Dependency:
        """Apply the per-dependency command-line flags.

        Unset flags leave what the dependency already says.
        """
        options = self.options
        if options.optional is not None:
            dependency.optional = options.optional
        if options.default_features is not None:
            dependency.default_features = options.default_features
        requested = options.requested_features()
        if requested is not None:
            dependency.features = requested
        if options.rename:
            dependency.rename = options.rename
        return dependency

    def _find_member(self, name: str) -> WorkspaceMember | None:
        return next((member for member in self.members if member.name == name), None)

    async def _resolve_unversioned(self, spec: DependencySpec) -> Dependency:
        dependency = self._populate(Dependency(name=spec.name))

        if isinstance(spec.source_hint, GitSource):
            dependency.source = spec.source_hint
            return dependency

        existing = find_existing_dependency(self.manifest, dependency.toml_key(), self.section)
        if existing is not None:
            return self._populate(existing)

        member = self._find_member(spec.name)
        if member is not None:
            # Only special-case workspace members when the user gave nothing else
            dependency.source = PathSource(member.directory)
            if self.section != [DEV_DEPENDENCIES]:
                dependency.version_req = member.version
            return dependency

        latest = await self.client.get_latest_dependency(spec.name)
        dependency.name = latest.name
        dependency.version_req = latest.version
        dependency.available_features = latest.available_features
        return dependency

    def _resolve_path(self, spec: DependencySpec) -> Dependency:
        dependency = self._populate(Dependency(name=spec.name, source=spec.source_hint))
        path = dependency.path()

        existing = find_existing_dependency(self.manifest, dependency.toml_key(), self.section)
        if existing is not None:
            if existing.path() == path and existing.version_req is not None:
                dependency.version_req = existing.version_req
        elif self.section != [DEV_DEPENDENCIES]:
            member = next((m for m in self.members if m.directory == path), None)
            if member is not None:
                dependency.version_req = member.version
        return dependency

    async def _available_features(self, dependency: Dependency) -> dict[str, list[str]]:
        source = dependency.source
        if isinstance(source, PathSource):
            return Manifest.load(source.path / MANIFEST_NAME).features()
        if isinstance(source, GitSource):
            return await self.client.get_git_features(source)
        if dependency.version_req is not None:
            return await self.client.get_features(dependency.name, dependency.version_req)
        logger.debug("No feature information for %s", dependency.name)
        return {}
