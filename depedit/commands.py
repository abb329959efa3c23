"""The ``add`` and ``rm`` operations.

Both work in two phases: everything is resolved and applied to an in-memory
document first, and the file is written once at the very end. Any error
before that point leaves the file on disk untouched.
"""

import logging
from pathlib import Path

from tomlkit.exceptions import TOMLKitError

from .config import MANIFEST_NAME, Settings
from .errors import DepEditError, InvalidArguments, ManifestEditError
from .features import activated_features, unrecognized_features
from .manifest import Manifest
from .models import (
    AddedDependency,
    Diagnostic,
    EditReport,
    RemovedDependency,
    WorkspaceMember,
    section_for,
)
from .registry import RegistryClient
from .resolver import AddOptions, DependencyResolver
from .workspace import find_manifest, manifest_from_pkgid, workspace_members

logger = logging.getLogger(__name__)


async def apply_add(
    manifest: Manifest,
    options: AddOptions,
    client: RegistryClient,
    members: list[WorkspaceMember] | None = None,
    cwd: Path | None = None,
    allow_paths: bool = True,
) -> tuple[list[AddedDependency], list[Diagnostic]]:
    """Resolve ``options.crates`` and write them into ``manifest`` in memory.

    ``options`` are validated first.

    Args:
        allow_paths: Accept local path crates. When False, crate names are
            never looked up on disk either.

    Returns:
        One event per written dependency and any warnings
    """
    options.validate()
    resolver = DependencyResolver(manifest, options, client, members, cwd, allow_paths=allow_paths)
    dependencies = await resolver.resolve_all()
    diagnostics = list(resolver.diagnostics)

    for dependency in dependencies:
        if not dependency.features:
            continue
        unknown = unrecognized_features(dependency.features, dependency.available_features)
        if unknown:
            diagnostics.append(
                Diagnostic(
                    "unrecognized-feature",
                    f"Unrecognized features for `{dependency.name}`: {', '.join(unknown)}",
                )
            )

    section = options.section()
    # Keep a sorted table sorted, but never reorder one the user arranged by hand
    was_sorted = manifest.is_sorted(section)
    added = []
    try:
        for dependency in dependencies:
            manifest.insert_into_table(section, dependency, keep_sorted=was_sorted)
            manifest.gc_dep(dependency.toml_key())
            added.append(
                AddedDependency(
                    dependency=dependency,
                    section=section,
                    optional=bool(dependency.optional),
                    features=activated_features(
                        dependency.features or [],
                        dependency.default_features is not False,
                        dependency.available_features,
                    ),
                )
            )
    except (DepEditError, TOMLKitError) as e:
        raise ManifestEditError(f"Could not edit `{MANIFEST_NAME}`: {e}") from e

    return added, diagnostics


def apply_remove(manifest: Manifest, crates: list[str], section: list[str]) -> list[RemovedDependency]:
    """Remove ``crates`` from ``manifest`` in memory."""
    removed = []
    try:
        for name in crates:
            manifest.remove_from_table(section, name)
            # Drop feature activations that pointed at the removed crate
            manifest.gc_dep(name)
            removed.append(RemovedDependency(name=name, section=section))
    except (DepEditError, TOMLKitError) as e:
        raise ManifestEditError(f"Could not edit `{MANIFEST_NAME}`: {e}") from e
    return removed


def _locate(manifest_path: Path | None, pkgid: str | None, cwd: Path | None) -> Path:
    if pkgid is not None:
        manifest_path = manifest_from_pkgid(manifest_path, pkgid, cwd)
    return find_manifest(manifest_path, cwd)


async def add_dependencies(
    options: AddOptions,
    *,
    manifest_path: Path | None = None,
    pkgid: str | None = None,
    dry_run: bool = False,
    offline: bool | None = None,
    client: RegistryClient | None = None,
    settings: Settings | None = None,
    cwd: Path | None = None,
) -> EditReport:
    """Add dependencies to a manifest on disk.

    Args:
        options: Crates and flags of the invocation
        manifest_path: Manifest file or package directory to edit
        pkgid: Workspace member to edit instead of ``manifest_path``
        dry_run: Resolve and edit in memory but do not write
        offline: Refuse network access
        client: Registry client to use instead of a default one
        settings: Settings for a default registry client
        cwd: Directory to resolve relative paths against

    Returns:
        Report of the edit
    """
    path = _locate(manifest_path, pkgid, cwd)
    manifest = Manifest.load(path)
    members = workspace_members(path)
    if client is None:
        client = RegistryClient(registry=options.registry, offline=offline, settings=settings)

    added, diagnostics = await apply_add(manifest, options, client, members, cwd)
    report = EditReport(
        manifest_path=path,
        original_content=manifest.raw,
        updated_content=manifest.to_string(),
        added=added,
        diagnostics=diagnostics,
    )

    if dry_run:
        report.diagnostics.append(Diagnostic("dry-run", "aborting add due to dry run"))
    else:
        manifest.write()
        report.written = True
    logger.info("Added %d dependencies to %s", len(added), path)
    return report


def remove_dependencies(
    crates: list[str],
    *,
    dev: bool = False,
    build: bool = False,
    manifest_path: Path | None = None,
    pkgid: str | None = None,
    dry_run: bool = False,
    cwd: Path | None = None,
) -> EditReport:
    """Remove dependencies from a manifest on disk."""
    if not crates:
        raise InvalidArguments("At least one dependency must be specified")
    if dev and build:
        raise InvalidArguments("`--dev` and `--build` are mutually exclusive")
    if manifest_path is not None and pkgid is not None:
        raise InvalidArguments("`--manifest-path` and `--package` are mutually exclusive")

    path = _locate(manifest_path, pkgid, cwd)
    manifest = Manifest.load(path)
    removed = apply_remove(manifest, crates, section_for(dev=dev, build=build))

    report = EditReport(
        manifest_path=path,
        original_content=manifest.raw,
        updated_content=manifest.to_string(),
        removed=removed,
    )
    if dry_run:
        report.diagnostics.append(Diagnostic("dry-run", "aborting rm due to dry run"))
    else:
        manifest.write()
        report.written = True
    logger.info("Removed %d dependencies from %s", len(removed), path)
    return report
