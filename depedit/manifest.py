"""Format-preserving Cargo.toml document and dependency table edits."""

import logging
import os
import tempfile
from collections.abc import Iterator, Mapping, MutableMapping
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import Array, Item, Table
from tomlkit.toml_document import TOMLDocument

from .config import MANIFEST_NAME
from .errors import KeyNotFound, ManifestError, ManifestNotFound, WriteFailed
from .models import (
    BUILD_DEPENDENCIES,
    DEPENDENCIES,
    DEV_DEPENDENCIES,
    Dependency,
    GitSource,
    PathSource,
    RegistrySource,
)

logger = logging.getLogger(__name__)

DEPENDENCY_TABLES = (DEPENDENCIES, DEV_DEPENDENCIES, BUILD_DEPENDENCIES)

# Keys describing where a dependency comes from, in the order they are written
SOURCE_KEYS = ("version", "registry", "path", "git", "branch", "tag", "rev")


def absolute_path(path: str | os.PathLike) -> Path:
    """Absolute, lexically normalized path (no filesystem access)."""
    return Path(os.path.normpath(os.path.abspath(path)))


def _plain(value):
    if isinstance(value, Item):
        return value.unwrap()
    return value


class Manifest:
    """A Cargo.toml file held as an editable tomlkit document."""

    def __init__(self, path: str | os.PathLike, document: TOMLDocument, raw: str):
        self.path = absolute_path(path)
        self.document = document
        self.raw = raw

    @classmethod
    def load(cls, path: str | os.PathLike) -> "Manifest":
        """Read and parse a manifest from disk.

        Args:
            path: Path to a Cargo.toml file

        Returns:
            Parsed manifest

        Raises:
            ManifestNotFound: If the file does not exist
            ManifestError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            # Bytes, so that line endings survive the round-trip untouched
            raw = path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            raise ManifestNotFound(f"Unable to find `{MANIFEST_NAME}` at {path}") from None
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestError(f"Failed to read {path}: {e}") from e
        return cls.from_string(raw, path)

    @classmethod
    def from_string(cls, content: str, path: str | os.PathLike = MANIFEST_NAME) -> "Manifest":
        try:
            document = tomlkit.parse(content)
        except TOMLKitError as e:
            raise ManifestError(f"Unable to parse {path}: {e}") from e
        return cls(path, document, content)

    @property
    def directory(self) -> Path:
        return self.path.parent

    def to_string(self) -> str:
        return self.document.as_string()

    def package_table(self) -> dict | None:
        package = _plain(self.document.get("package"))
        return package if isinstance(package, dict) else None

    def workspace_table(self) -> dict | None:
        workspace = _plain(self.document.get("workspace"))
        return workspace if isinstance(workspace, dict) else None

    def package_name(self) -> str:
        package = self.package_table()
        if package is None or not isinstance(package.get("name"), str):
            raise ManifestError(f"Missing `package.name` in {self.path}")
        return package["name"]

    def package_version(self) -> str | None:
        """Declared package version, or None when inherited or omitted."""
        package = self.package_table() or {}
        version = package.get("version")
        return version if isinstance(version, str) else None

    def features(self) -> dict[str, list[str]]:
        """Features this package offers to its dependents.

        Optional dependencies count as implicit features unless some feature
        activates them with the ``dep:`` syntax.
        """
        table = _plain(self.document.get("features")) or {}
        features = {
            name: [str(value) for value in values]
            for name, values in table.items()
            if isinstance(values, list)
        }

        hidden = {
            value[len("dep:"):]
            for values in features.values()
            for value in values
            if value.startswith("dep:")
        }
        for _, section in self.get_sections():
            for key, entry in section.items():
                entry = _plain(entry)
                if (
                    isinstance(entry, dict)
                    and entry.get("optional") is True
                    and key not in features
                    and key not in hidden
                ):
                    features[key] = []
        return features

    def get_sections(self) -> list[tuple[list[str], MutableMapping]]:
        """Every dependency table in the document with its section path."""
        sections = []
        for name in DEPENDENCY_TABLES:
            table = self.document.get(name)
            if isinstance(table, MutableMapping):
                sections.append(([name], table))

        target = self.document.get("target")
        if isinstance(target, Mapping):
            for triple, target_table in target.items():
                if not isinstance(target_table, Mapping):
                    continue
                for name in DEPENDENCY_TABLES:
                    table = target_table.get(name)
                    if isinstance(table, MutableMapping):
                        sections.append((["target", str(triple), name], table))
        return sections

    def get_dependency_versions(self, key: str) -> Iterator[tuple[list[str], Dependency]]:
        """Entries for ``key`` across all dependency tables.

        Entries that cannot be interpreted are skipped.
        """
        for section, table in self.get_sections():
            if key not in table:
                continue
            try:
                yield section, dependency_from_entry(key, table[key], self.directory)
            except ManifestError as e:
                logger.debug("Skipping entry %s in %s: %s", key, ".".join(section), e)

    def get_table(self, section: list[str]) -> MutableMapping | None:
        container = self.document
        for name in section:
            item = container.get(name)
            if not isinstance(item, MutableMapping):
                return None
            container = item
        return container

    def _get_or_create_table(self, section: list[str]) -> MutableMapping:
        container = self.document
        for depth, name in enumerate(section):
            item = container.get(name)
            if item is None:
                # `target` and the platform only exist to hold the leaf table
                container[name] = tomlkit.table(is_super_table=depth < len(section) - 1)
                item = container[name]
            elif not isinstance(item, MutableMapping):
                dotted = ".".join(section[: depth + 1])
                raise ManifestError(f"The key `{dotted}` in {self.path} is not a table")
            container = item
        return container

    def insert_into_table(self, section: list[str], dependency: Dependency, keep_sorted: bool = False) -> None:
        """Write ``dependency`` into the table at ``section``.

        A table-style entry that already exists is updated in place so that
        keys this tool does not manage are kept. With ``keep_sorted`` a new
        key goes to its sorted position instead of the end of the table.
        """
        table = self._get_or_create_table(section)
        key = dependency.toml_key()
        existing = table.get(key)
        if isinstance(existing, MutableMapping):
            update_entry(existing, dependency, self.directory)
        elif key in table or not keep_sorted:
            table[key] = dependency_to_entry(dependency, self.directory)
        else:
            _insert_sorted(table, key, dependency_to_entry(dependency, self.directory))

    def remove_from_table(self, section: list[str], key: str):
        """Delete ``key`` from the table at ``section``.

        Returns:
            The removed entry as plain Python data

        Raises:
            KeyNotFound: If the table or the key does not exist
        """
        name = ".".join(section)
        table = self.get_table(section)
        if table is None:
            raise KeyNotFound(f"The table `{name}` could not be found.")
        if key not in table:
            raise KeyNotFound(f"The dependency `{key}` could not be found in `{name}`.")

        removed = _plain(table[key])
        del table[key]
        if len(table) == 0:
            self._drop_table(section)
        return removed

    def _drop_table(self, section: list[str]) -> None:
        for depth in range(len(section), 0, -1):
            parent = self.get_table(section[: depth - 1]) if depth > 1 else self.document
            if parent is None:
                return
            child = parent.get(section[depth - 1])
            if isinstance(child, Mapping) and len(child) == 0:
                del parent[section[depth - 1]]
            else:
                return

    def optional_status(self, key: str) -> bool | None:
        """True if ``key`` is an optional dependency anywhere.

        Returns False if it is present but never optional, and None if the
        manifest does not mention it at all.
        """
        status = None
        for _, table in self.get_sections():
            if key not in table:
                continue
            entry = _plain(table[key])
            if isinstance(entry, dict) and entry.get("optional") is True:
                return True
            status = False
        return status

    def gc_dep(self, key: str) -> list[str]:
        """Fix up feature activations of a dependency that is gone or no
        longer optional.

        A removed dependency loses every activation. A required one keeps
        ``key/feat``, has ``key?/feat`` rewritten to ``key/feat``, and loses
        ``dep:key`` and the bare ``key``, which only exist for optional
        dependencies.

        Returns:
            The activation strings that were removed
        """
        status = self.optional_status(key)
        if status:
            return []

        features = self.document.get("features")
        if not isinstance(features, Mapping):
            return []

        present = status is not None
        local_features = set(features.keys())
        removed = []
        for _, values in features.items():
            if not isinstance(values, Array):
                continue
            for index in reversed(range(len(values))):
                value = values[index]
                if not isinstance(value, str):
                    continue
                value = str(value)
                if _enables_optional(value, key, local_features) or (
                    not present and _names_feature_of(value, key)
                ):
                    removed.append(value)
                    del values[index]
                elif value.startswith(f"{key}?/"):
                    values[index] = f"{key}/{value[len(key) + 2:]}"
        if removed:
            logger.debug("Removed stale activations of %s: %s", key, removed)
        return removed

    def is_sorted(self, section: list[str]) -> bool:
        table = self.get_table(section)
        if table is None:
            return True
        keys = list(table.keys())
        return all(a <= b for a, b in zip(keys, keys[1:]))

    def write(self) -> None:
        """Atomically replace the file on disk with the edited document."""
        content = self.to_string().encode("utf-8")
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self.directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            if self.path.exists():
                os.chmod(tmp_path, self.path.stat().st_mode & 0o7777)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise WriteFailed(f"Failed to write {self.path}: {e}") from e
        logger.debug("Wrote %s", self.path)


def _enables_optional(value: str, key: str, local_features: set[str]) -> bool:
    if value == f"dep:{key}":
        return True
    # A bare name is only an activation if it is not one of our own features
    return value == key and key not in local_features


def _names_feature_of(value: str, key: str) -> bool:
    return "/" in value and value.split("/", 1)[0] in (key, f"{key}?")


def _insert_sorted(table: MutableMapping, key: str, value) -> None:
    """Insert ``key`` in front of the first larger key.

    Comment and blank lines directly above that key stay attached to it.
    Sub-tables always come after plain entries.
    """
    if not isinstance(table, Table):
        table[key] = value
        return

    body = table.value.body
    position = next(
        (
            index
            for index, (existing, item) in enumerate(body)
            if existing is not None and (isinstance(item, Table) or existing.key > key)
        ),
        None,
    )
    if position is None:
        table[key] = value
        return
    while position > 0 and body[position - 1][0] is None:
        position -= 1

    # tomlkit only appends through its public API
    item = tomlkit.item(value)
    table.value._insert_at(position, key, item)
    dict.__setitem__(table, key, item)


def dependency_from_entry(key: str, entry, manifest_dir: Path) -> Dependency:
    """Interpret a dependency table entry.

    Args:
        key: Key of the entry in its table
        entry: tomlkit item or plain value
        manifest_dir: Directory relative paths are resolved against

    Returns:
        The dependency described by the entry

    Raises:
        ManifestError: If the entry has an unexpected shape
    """
    value = _plain(entry)
    if isinstance(value, str):
        return Dependency(name=key, version_req=value)
    if not isinstance(value, dict):
        raise ManifestError(f"Invalid dependency entry for `{key}`")

    if isinstance(value.get("git"), str):
        source = GitSource(
            repo=value["git"],
            branch=value.get("branch"),
            tag=value.get("tag"),
            rev=value.get("rev"),
        )
    elif isinstance(value.get("path"), str):
        source = PathSource(absolute_path(manifest_dir / value["path"]))
    else:
        source = RegistrySource(value.get("registry"))

    version = value.get("version")
    if version is not None and not isinstance(version, str):
        raise ManifestError(f"Invalid version for `{key}`")

    features = value.get("features")
    if features is not None and not isinstance(features, list):
        raise ManifestError(f"Invalid features for `{key}`")

    default_features = value.get("default-features", value.get("default_features"))
    package = value.get("package")
    return Dependency(
        name=package if isinstance(package, str) else key,
        rename=key if isinstance(package, str) else None,
        source=source,
        version_req=version,
        optional=value.get("optional") if isinstance(value.get("optional"), bool) else None,
        default_features=default_features if isinstance(default_features, bool) else None,
        features=[str(feature) for feature in features] if features is not None else None,
    )


def _relative(path: Path, base: Path) -> str:
    try:
        return Path(os.path.relpath(path, base)).as_posix()
    except ValueError:
        # Different drives on Windows
        return path.as_posix()


def _source_fields(dependency: Dependency, manifest_dir: Path) -> list[tuple[str, str]]:
    fields = []
    if dependency.version_req is not None:
        fields.append(("version", dependency.version_req))
    source = dependency.source
    if isinstance(source, RegistrySource) and source.registry:
        fields.append(("registry", source.registry))
    elif isinstance(source, PathSource):
        fields.append(("path", _relative(source.path, manifest_dir)))
    elif isinstance(source, GitSource):
        fields.append(("git", source.repo))
        for name in ("branch", "tag", "rev"):
            if getattr(source, name):
                fields.append((name, getattr(source, name)))
    return fields


def _is_simple(dependency: Dependency) -> bool:
    return (
        dependency.version_req is not None
        and isinstance(dependency.source, RegistrySource)
        and dependency.source.registry is None
        and dependency.rename is None
        and dependency.default_features is not False
        and not dependency.features
        and not dependency.optional
    )


def dependency_to_entry(dependency: Dependency, manifest_dir: Path):
    """Encode a dependency as a manifest value.

    A plain registry dependency becomes a version string, anything else an
    inline table.
    """
    if _is_simple(dependency):
        return dependency.version_req

    entry = tomlkit.inline_table()
    for key, value in _source_fields(dependency, manifest_dir):
        entry[key] = value
    if dependency.rename:
        entry["package"] = dependency.name
    if dependency.default_features is False:
        entry["default-features"] = False
    if dependency.features:
        entry["features"] = list(dependency.features)
    if dependency.optional:
        entry["optional"] = True
    return entry


def update_entry(entry: MutableMapping, dependency: Dependency, manifest_dir: Path) -> None:
    """Apply ``dependency`` to an existing table entry in place."""
    desired = dict(_source_fields(dependency, manifest_dir))
    for key in SOURCE_KEYS:
        if key in desired:
            if _plain(entry.get(key)) != desired[key]:
                entry[key] = desired[key]
        elif key in entry:
            del entry[key]

    if dependency.rename:
        entry["package"] = dependency.name
    elif "package" in entry:
        del entry["package"]

    if dependency.default_features is not None:
        alias = "default_features" if "default_features" in entry else "default-features"
        if dependency.default_features:
            if alias in entry:
                del entry[alias]
        else:
            entry[alias] = False

    if dependency.features is not None:
        current = [str(feature) for feature in (_plain(entry.get("features")) or [])]
        merged = current + [feature for feature in dependency.features if feature not in current]
        if merged != current:
            entry["features"] = merged

    if dependency.optional is not None:
        if dependency.optional:
            entry["optional"] = True
        elif "optional" in entry:
            del entry["optional"]
