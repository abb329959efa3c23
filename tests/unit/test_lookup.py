"""Tests for selecting an existing dependency to reuse."""

from depedit.lookup import (
    RANK_BUILD,
    RANK_DEV,
    RANK_EXISTING,
    RANK_RUNTIME,
    RANK_TARGET,
    find_existing_dependency,
    section_rank,
)
from depedit.manifest import Manifest

CONTENT = """[dependencies]
foo = "1.0"
baz = { version = "2", optional = true }

[dev-dependencies]
foo = "0.9"

[build-dependencies]
bar = { path = "../bar", version = "0.1" }

[target.'cfg(unix)'.dependencies]
qux = "3"
"""


class TestSectionRank:
    """Test the preference order between tables."""

    def test_ranks(self):
        target = ["dependencies"]
        assert section_rank(["dev-dependencies"], target) == RANK_DEV
        assert section_rank(["build-dependencies"], target) == RANK_BUILD
        assert section_rank(["target", "x", "dependencies"], target) == RANK_TARGET
        assert section_rank(["dependencies"], ["dev-dependencies"]) == RANK_RUNTIME
        assert section_rank(["dependencies"], target) == RANK_EXISTING

    def test_order(self):
        assert RANK_DEV < RANK_BUILD < RANK_TARGET < RANK_RUNTIME < RANK_EXISTING


class TestFindExistingDependency:
    """Test reuse of declared dependencies."""

    def setup_method(self):
        """Setup test fixtures."""
        self.manifest = Manifest.from_string(CONTENT, "/work/app/Cargo.toml")

    def test_not_declared(self):
        assert find_existing_dependency(self.manifest, "serde", ["dependencies"]) is None

    def test_runtime_outranks_dev(self):
        """Should copy the runtime entry into another table."""
        dependency = find_existing_dependency(self.manifest, "foo", ["build-dependencies"])
        assert dependency.version_req == "1.0"

    def test_existing_entry_wins(self):
        """An entry in the target table should beat every other table."""
        dependency = find_existing_dependency(self.manifest, "foo", ["dev-dependencies"])
        assert dependency.version_req == "0.9"

    def test_target_table_is_searched(self):
        dependency = find_existing_dependency(self.manifest, "qux", ["dependencies"])
        assert dependency.version_req == "3"

    def test_dev_path_dependency_drops_version(self):
        """Path dependencies copied into dev-dependencies should not carry a version."""
        dependency = find_existing_dependency(self.manifest, "bar", ["dev-dependencies"])
        assert str(dependency.path()).endswith("bar")
        assert dependency.version_req is None

    def test_path_dependency_keeps_version_elsewhere(self):
        dependency = find_existing_dependency(self.manifest, "bar", ["dependencies"])
        assert dependency.version_req == "0.1"

    def test_dev_dependency_is_never_optional(self):
        dependency = find_existing_dependency(self.manifest, "baz", ["dev-dependencies"])
        assert dependency.optional is None
        assert dependency.version_req == "2"

    def test_optional_kept_for_runtime(self):
        dependency = find_existing_dependency(self.manifest, "baz", ["dependencies"])
        assert dependency.optional is True
