"""Tests for CLI functionality."""

from unittest.mock import AsyncMock, patch

import tomlkit
from typer.testing import CliRunner

from apps.cli.main import app
from depedit.errors import VersionLookupFailed
from depedit.models import LatestDependency


class TestCLI:
    """Test CLI command interface."""

    def setup_method(self):
        """Setup test fixtures."""
        self.runner = CliRunner()

    def test_cli_help_command(self):
        """Should display help when called with --help."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "depedit" in result.output.lower()
        assert "add" in result.output
        assert "rm" in result.output

    def test_add_explicit_version(self, cargo_project):
        """Should add a dependency and report the feature summary."""
        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_features.return_value = {"default": ["std"], "std": [], "derive": []}

            result = self.runner.invoke(app, ["add", "serde@1.0", "--manifest-path", str(cargo_project)])

        assert result.exit_code == 0
        assert tomlkit.parse(cargo_project.read_text())["dependencies"]["serde"] == "1.0"
        assert "Adding serde v1.0 to dependencies." in result.output
        assert "Features:" in result.output
        assert "+ std" in result.output
        assert "- derive" in result.output
        mock_client.get_latest_dependency.assert_not_called()

    def test_add_latest_version(self, cargo_project):
        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_latest_dependency.return_value = LatestDependency(name="rand", version="0.8.5")
            mock_client.get_features.return_value = {}

            result = self.runner.invoke(
                app, ["add", "rand", "--dev", "--manifest-path", str(cargo_project)]
            )

        assert result.exit_code == 0
        assert 'rand = "0.8.5"' in cargo_project.read_text()
        assert "Adding rand v0.8.5 to dev-dependencies." in result.output

    def test_add_dry_run(self, cargo_project):
        """Should leave the manifest alone and say so."""
        before = cargo_project.read_bytes()

        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_features.return_value = {}

            result = self.runner.invoke(
                app, ["add", "serde@1", "--dry-run", "--manifest-path", str(cargo_project)]
            )

        assert result.exit_code == 0
        assert cargo_project.read_bytes() == before
        assert "aborting add due to dry run" in result.output

    def test_add_quiet(self, cargo_project):
        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_features.return_value = {}

            result = self.runner.invoke(
                app, ["add", "serde@1", "--quiet", "--manifest-path", str(cargo_project)]
            )

        assert result.exit_code == 0
        assert "Adding" not in result.output

    def test_add_git_dependency(self, cargo_project):
        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_git_features.return_value = {}

            result = self.runner.invoke(
                app,
                [
                    "add", "regex",
                    "--git", "https://github.com/rust-lang/regex",
                    "--tag", "1.10.0",
                    "-Z", "git",
                    "--manifest-path", str(cargo_project),
                ],
            )

        assert result.exit_code == 0
        entry = tomlkit.parse(cargo_project.read_text())["dependencies"]["regex"]
        assert entry.unwrap() == {"git": "https://github.com/rust-lang/regex", "tag": "1.10.0"}

    def test_git_without_unstable_flag(self, cargo_project):
        result = self.runner.invoke(
            app, ["add", "regex", "--git", "https://github.com/rust-lang/regex", "--manifest-path", str(cargo_project)]
        )
        assert result.exit_code == 1
        assert "-Z git" in result.output

    def test_conflicting_sections(self, cargo_project):
        """Should fail on mutually exclusive section flags."""
        result = self.runner.invoke(
            app, ["add", "serde@1", "--dev", "--build", "--manifest-path", str(cargo_project)]
        )
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_lookup_failure(self, cargo_project):
        before = cargo_project.read_bytes()

        with patch('apps.cli.main.RegistryClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client_class.return_value = mock_client
            mock_client.get_latest_dependency.side_effect = VersionLookupFailed(
                "The crate `nope` could not be found in the registry"
            )

            result = self.runner.invoke(app, ["add", "nope", "--manifest-path", str(cargo_project)])

        assert result.exit_code == 1
        assert "could not be found" in result.output
        assert cargo_project.read_bytes() == before

    def test_missing_manifest(self, tmp_path):
        result = self.runner.invoke(app, ["rm", "serde", "--manifest-path", str(tmp_path / "Cargo.toml")])
        assert result.exit_code == 1
        assert "Unable to find" in result.output

    def test_remove(self, cargo_project):
        """Should remove the dependency and print a progress line."""
        result = self.runner.invoke(app, ["rm", "anyhow", "--manifest-path", str(cargo_project)])

        assert result.exit_code == 0
        assert "anyhow" not in cargo_project.read_text()
        assert "Removing anyhow from dependencies" in result.output

    def test_remove_missing_dependency(self, cargo_project):
        result = self.runner.invoke(app, ["rm", "serde", "--manifest-path", str(cargo_project)])
        assert result.exit_code == 1
        assert "The dependency `serde` could not be found in `dependencies`." in result.output
