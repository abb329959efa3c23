"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def sample_cargo_toml():
    """Sample Cargo.toml content for testing."""
    return """[package]
name = "app"
version = "0.1.0"
edition = "2021"

[dependencies]
anyhow = "1.0"
tokio = { version = "1", features = ["rt"] }

[features]
default = []
"""


@pytest.fixture
def cargo_project(tmp_path, sample_cargo_toml):
    """Create a standalone package and return its manifest path."""
    manifest = tmp_path / "app" / "Cargo.toml"
    manifest.parent.mkdir()
    manifest.write_text(sample_cargo_toml)
    (manifest.parent / "src").mkdir()
    return manifest


@pytest.fixture
def workspace(tmp_path):
    """Create a workspace with two members and return its root directory.

    ``app`` declares its own version, ``lib`` inherits the workspace one.
    """
    root = tmp_path / "ws"
    root.mkdir()
    (root / "Cargo.toml").write_text(
        '[workspace]\nmembers = ["crates/*"]\n\n[workspace.package]\nversion = "0.3.0"\n'
    )
    app = root / "crates" / "app"
    app.mkdir(parents=True)
    (app / "Cargo.toml").write_text('[package]\nname = "app"\nversion = "0.1.0"\n')
    lib = root / "crates" / "lib"
    lib.mkdir(parents=True)
    (lib / "Cargo.toml").write_text(
        '[package]\nname = "lib"\nversion.workspace = true\n\n[features]\ndefault = ["std"]\nstd = []\n'
    )
    return root


@pytest.fixture
def registry_client():
    """Registry client double that knows no features."""
    client = AsyncMock()
    client.get_features.return_value = {}
    client.get_git_features.return_value = {}
    return client
