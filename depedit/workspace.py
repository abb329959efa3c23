"""Manifest discovery and workspace member lookup."""

import logging
from pathlib import Path

from .config import MANIFEST_NAME
from .errors import ManifestNotFound, PackageNotFound
from .manifest import Manifest, absolute_path
from .models import WorkspaceMember

logger = logging.getLogger(__name__)

# Cargo's default when a package omits its version
DEFAULT_PACKAGE_VERSION = "0.0.0"

_GLOB_CHARS = set("*?[")


def find_manifest(manifest_path: Path | None = None, cwd: Path | None = None) -> Path:
    """Locate the manifest to edit.

    Args:
        manifest_path: Explicit manifest file or package directory
        cwd: Directory to search upwards from when no path is given

    Returns:
        Absolute path to a Cargo.toml file
    """
    if manifest_path is not None:
        path = absolute_path(manifest_path)
        if path.is_dir():
            path = path / MANIFEST_NAME
        if not path.is_file():
            raise ManifestNotFound(f"Unable to find `{MANIFEST_NAME}` at {path}")
        return path

    directory = absolute_path(cwd or Path.cwd())
    for candidate in (directory, *directory.parents):
        path = candidate / MANIFEST_NAME
        if path.is_file():
            return path
    raise ManifestNotFound(f"Unable to find `{MANIFEST_NAME}` for {directory}")


def find_workspace_root(manifest: Manifest) -> Manifest | None:
    """Manifest holding the ``[workspace]`` table ``manifest`` belongs to."""
    if manifest.workspace_table() is not None:
        return manifest

    package = manifest.package_table() or {}
    explicit = package.get("workspace")
    if isinstance(explicit, str):
        root_path = absolute_path(manifest.directory / explicit) / MANIFEST_NAME
        return Manifest.load(root_path)

    for directory in manifest.directory.parents:
        path = directory / MANIFEST_NAME
        if not path.is_file():
            continue
        candidate = Manifest.load(path)
        if candidate.workspace_table() is not None:
            return candidate
    return None


def _member_directories(root: Manifest) -> list[Path]:
    workspace = root.workspace_table() or {}
    excluded = {absolute_path(root.directory / entry) for entry in workspace.get("exclude", [])}

    directories = []
    if root.package_table() is not None:
        directories.append(root.directory)

    for pattern in workspace.get("members", []):
        if _GLOB_CHARS & set(pattern):
            matches = sorted(root.directory.glob(pattern))
        else:
            matches = [root.directory / pattern]
        for match in matches:
            directory = absolute_path(match)
            if directory in excluded or directory in directories:
                continue
            if (directory / MANIFEST_NAME).is_file():
                directories.append(directory)
            else:
                logger.debug("Ignoring workspace member without manifest: %s", directory)
    return directories


def _member_version(manifest: Manifest, root: Manifest | None) -> str:
    version = manifest.package_version()
    if version is not None:
        return version

    inherited = ((manifest.package_table() or {}).get("version") or {})
    if isinstance(inherited, dict) and inherited.get("workspace") is True and root is not None:
        shared = (root.workspace_table() or {}).get("package", {})
        if isinstance(shared.get("version"), str):
            return shared["version"]
    return DEFAULT_PACKAGE_VERSION


def workspace_members(manifest_path: Path) -> list[WorkspaceMember]:
    """Packages of the workspace containing ``manifest_path``.

    A package outside of any workspace is its own single member.
    """
    manifest = Manifest.load(manifest_path)
    root = find_workspace_root(manifest)
    if root is None:
        if manifest.package_table() is None:
            return []
        return [
            WorkspaceMember(
                name=manifest.package_name(),
                version=_member_version(manifest, None),
                manifest_path=manifest.path,
            )
        ]

    members = []
    for directory in _member_directories(root):
        member = root if directory == root.directory else Manifest.load(directory / MANIFEST_NAME)
        if member.package_table() is None:
            continue
        members.append(
            WorkspaceMember(
                name=member.package_name(),
                version=_member_version(member, root),
                manifest_path=member.path,
            )
        )
    logger.debug("Workspace members: %s", [member.name for member in members])
    return members


def manifest_from_pkgid(manifest_path: Path | None, pkgid: str, cwd: Path | None = None) -> Path:
    """Manifest path of the workspace member named by ``pkgid``.

    ``pkgid`` is a package name, optionally followed by ``@version``.
    """
    name, _, version = pkgid.replace(":", "@", 1).partition("@")
    members = workspace_members(find_manifest(manifest_path, cwd))
    for member in members:
        if member.name == name and (not version or member.version == version):
            return member.manifest_path
    raise PackageNotFound(f"package `{pkgid}` not found in the workspace")
