"""Tests for dependency resolution."""

import pytest

from depedit.errors import InvalidArguments, SelfDependency, UnstableFlagRequired
from depedit.manifest import Manifest
from depedit.models import GitSource, LatestDependency, PathSource, RegistrySource, WorkspaceMember
from depedit.resolver import AddOptions, DependencyResolver, UnstableOption


class TestAddOptions:
    """Test command-line flag validation."""

    def test_sections(self):
        assert AddOptions(crates=["a"]).section() == ["dependencies"]
        assert AddOptions(crates=["a"], dev=True).section() == ["dev-dependencies"]
        assert AddOptions(crates=["a"], target="cfg(unix)").section() == ["target", "cfg(unix)", "dependencies"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"dev": True, "build": True},
            {"build": True, "target": "x86_64-unknown-linux-gnu"},
            {"target": "  "},
            {"dev": True, "optional": True},
            {"dev": True, "optional": False},
            {"branch": "main"},
            {"git": "https://github.com/o/r", "tag": "v1", "rev": "abc", "unstable": ["git"]},
            {"git": "https://github.com/o/r", "registry": "internal", "unstable": ["git"]},
        ],
    )
    def test_invalid_combinations(self, kwargs):
        """Should reject flags that cannot be combined."""
        with pytest.raises(InvalidArguments):
            AddOptions(crates=["a"], **kwargs).validate()

    def test_no_crates(self):
        with pytest.raises(InvalidArguments):
            AddOptions(crates=[]).validate()

    def test_git_requires_unstable_flag(self):
        with pytest.raises(UnstableFlagRequired):
            AddOptions(crates=["a"], git="https://github.com/o/r").validate()

        AddOptions(crates=["a"], git="https://github.com/o/r", unstable=[UnstableOption.GIT]).validate()

    def test_requested_features(self):
        options = AddOptions(crates=["a"], features=["derive std", "rc,derive"])
        assert options.requested_features() == ["derive", "std", "rc"]
        assert AddOptions(crates=["a"]).requested_features() is None


class TestDependencyResolver:
    """Test resolving crate references."""

    def _resolver(self, manifest, client, members=None, cwd=None, **kwargs):
        options = AddOptions(**kwargs)
        return DependencyResolver(manifest, options, client, members, cwd)

    @pytest.mark.asyncio
    async def test_explicit_version_skips_latest_lookup(self, tmp_path, sample_cargo_toml, registry_client):
        """An explicit version should never query the latest version."""
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, cwd=tmp_path, crates=["serde@1.0"])

        [dependency] = await resolver.resolve_all()

        assert dependency.version_req == "1.0"
        registry_client.get_latest_dependency.assert_not_called()
        registry_client.get_features.assert_awaited_once_with("serde", "1.0")

    @pytest.mark.asyncio
    async def test_latest_version_lookup(self, tmp_path, sample_cargo_toml, registry_client):
        registry_client.get_latest_dependency.return_value = LatestDependency(
            name="serde", version="1.0.200", available_features={"std": []}
        )
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, cwd=tmp_path, crates=["Serde"])

        [dependency] = await resolver.resolve_all()

        assert dependency.name == "serde"
        assert dependency.version_req == "1.0.200"
        assert dependency.available_features == {"std": []}
        registry_client.get_features.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_dependency_is_reused(self, tmp_path, sample_cargo_toml, registry_client):
        """Should copy an entry declared in another table instead of querying."""
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, cwd=tmp_path, crates=["tokio"], dev=True)

        [dependency] = await resolver.resolve_all()

        assert dependency.version_req == "1"
        assert dependency.features == ["rt"]
        registry_client.get_latest_dependency.assert_not_called()

    @pytest.mark.asyncio
    async def test_flags_override_existing(self, tmp_path, sample_cargo_toml, registry_client):
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(
            manifest, registry_client, cwd=tmp_path,
            crates=["tokio"], optional=True, default_features=False, features=["macros"],
        )

        [dependency] = await resolver.resolve_all()

        assert dependency.optional is True
        assert dependency.default_features is False
        assert dependency.features == ["macros"]

    @pytest.mark.asyncio
    async def test_workspace_member(self, workspace, registry_client):
        """Should point at a workspace member by path with its version."""
        app = workspace / "crates" / "app"
        lib = workspace / "crates" / "lib"
        members = [
            WorkspaceMember(name="app", version="0.1.0", manifest_path=app / "Cargo.toml"),
            WorkspaceMember(name="lib", version="0.3.0", manifest_path=lib / "Cargo.toml"),
        ]
        manifest = Manifest.load(app / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, members, cwd=app, crates=["lib"])

        [dependency] = await resolver.resolve_all()

        assert dependency.source == PathSource(lib)
        assert dependency.version_req == "0.3.0"
        assert dependency.available_features == {"default": ["std"], "std": []}
        registry_client.get_latest_dependency.assert_not_called()

    @pytest.mark.asyncio
    async def test_workspace_member_as_dev_dependency(self, workspace, registry_client):
        app = workspace / "crates" / "app"
        lib = workspace / "crates" / "lib"
        members = [WorkspaceMember(name="lib", version="0.3.0", manifest_path=lib / "Cargo.toml")]
        manifest = Manifest.load(app / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, members, cwd=app, crates=["lib"], dev=True)

        [dependency] = await resolver.resolve_all()

        assert dependency.source == PathSource(lib)
        assert dependency.version_req is None

    @pytest.mark.asyncio
    async def test_path_to_member_gets_version(self, workspace, registry_client):
        app = workspace / "crates" / "app"
        lib = workspace / "crates" / "lib"
        members = [WorkspaceMember(name="lib", version="0.3.0", manifest_path=lib / "Cargo.toml")]
        manifest = Manifest.load(app / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, members, cwd=app, crates=["../lib"])

        [dependency] = await resolver.resolve_all()

        assert dependency.name == "lib"
        assert dependency.version_req == "0.3.0"

    @pytest.mark.asyncio
    async def test_self_dependency(self, cargo_project, registry_client):
        """Should refuse to add a package to itself."""
        manifest = Manifest.load(cargo_project)
        resolver = self._resolver(manifest, registry_client, cwd=cargo_project.parent, crates=["."])

        with pytest.raises(SelfDependency):
            await resolver.resolve_all()

    @pytest.mark.asyncio
    async def test_git_source(self, tmp_path, sample_cargo_toml, registry_client):
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(
            manifest, registry_client, cwd=tmp_path,
            crates=["regex"], git="https://github.com/rust-lang/regex", branch="main", unstable=["git"],
        )

        [dependency] = await resolver.resolve_all()

        assert dependency.source == GitSource("https://github.com/rust-lang/regex", branch="main")
        assert dependency.version_req is None
        registry_client.get_git_features.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_registry_override(self, tmp_path, sample_cargo_toml, registry_client):
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, cwd=tmp_path, crates=["serde@1"], registry="internal")

        [dependency] = await resolver.resolve_all()

        assert dependency.source == RegistrySource("internal")
        assert resolver.diagnostics == []

    @pytest.mark.asyncio
    async def test_inline_features_warn_without_gate(self, tmp_path, sample_cargo_toml, registry_client):
        """Should accept ``+feature`` tokens but warn that they are unstable."""
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(manifest, registry_client, cwd=tmp_path, crates=["serde@1", "+derive"])

        [dependency] = await resolver.resolve_all()

        assert dependency.features == ["derive"]
        assert [d.code for d in resolver.diagnostics] == ["inline-add-unstable"]

    @pytest.mark.asyncio
    async def test_inline_features_with_gate(self, tmp_path, sample_cargo_toml, registry_client):
        manifest = Manifest.from_string(sample_cargo_toml, tmp_path / "Cargo.toml")
        resolver = self._resolver(
            manifest, registry_client, cwd=tmp_path, crates=["serde@1", "+derive"], unstable=["inline-add"]
        )

        await resolver.resolve_all()

        assert resolver.diagnostics == []
