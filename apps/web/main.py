"""FastAPI web application for depedit.

The API previews edits on manifest text sent by the client. It never reads
or writes manifests on the server's filesystem.
"""

import difflib
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from depedit.commands import apply_add, apply_remove
from depedit.crate_spec import parse_features
from depedit.errors import DepEditError, VersionLookupFailed
from depedit.features import activated_features
from depedit.manifest import Manifest
from depedit.models import AddedDependency, EditReport, section_for
from depedit.registry import RegistryClient
from depedit.resolver import AddOptions

logger = logging.getLogger(__name__)

app = FastAPI(
    title="depedit",
    description="Preview dependency edits to Cargo.toml manifests",
    version="0.1.0",
)


class AddRequest(BaseModel):
    """Request model for adding dependencies."""
    content: str
    crates: list[str]
    features: Optional[list[str]] = None
    optional: Optional[bool] = None
    default_features: Optional[bool] = None
    rename: Optional[str] = None
    registry: Optional[str] = None
    dev: bool = False
    build: bool = False
    target: Optional[str] = None
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    unstable: list[str] = []
    offline: bool = False


class RemoveRequest(BaseModel):
    """Request model for removing dependencies."""
    content: str
    crates: list[str]
    dev: bool = False
    build: bool = False


class EditResponse(BaseModel):
    """Response model for manifest edits."""
    original_content: str
    updated_content: str
    diff: str
    changes: list[dict]
    warnings: list[str]
    has_changes: bool


class FeaturesResponse(BaseModel):
    """Response model for feature activation queries."""
    name: str
    version: str
    activated: list[str]
    deactivated: list[str]


def _diff(original: str, updated: str) -> str:
    return "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            updated.splitlines(keepends=True),
            fromfile="Cargo.toml",
            tofile="Cargo.toml",
        )
    )


def _describe(event: AddedDependency) -> dict:
    dependency = event.dependency
    return {
        "name": dependency.name,
        "key": dependency.toml_key(),
        "version": dependency.version_req,
        "section": event.section,
        "optional": event.optional,
        "activated_features": event.features.activated,
        "deactivated_features": event.features.deactivated,
    }


def _response(report: EditReport) -> EditResponse:
    changes = [_describe(event) for event in report.added]
    changes.extend({"name": event.name, "section": event.section, "removed": True} for event in report.removed)
    return EditResponse(
        original_content=report.original_content,
        updated_content=report.updated_content,
        diff=_diff(report.original_content, report.updated_content),
        changes=changes,
        warnings=[diagnostic.message for diagnostic in report.diagnostics],
        has_changes=report.original_content != report.updated_content,
    )


@app.post("/api/add", response_model=EditResponse)
async def add_dependencies(request: AddRequest):
    """Add dependencies to manifest text."""
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="No content provided")

    options = AddOptions(
        crates=request.crates,
        features=request.features,
        optional=request.optional,
        default_features=request.default_features,
        rename=request.rename,
        registry=request.registry,
        dev=request.dev,
        build=request.build,
        target=request.target,
        git=request.git,
        branch=request.branch,
        tag=request.tag,
        rev=request.rev,
        unstable=request.unstable,
    )

    try:
        manifest = Manifest.from_string(request.content)
        client = RegistryClient(registry=request.registry, offline=request.offline or None)
        # There is no filesystem context to resolve local paths against
        added, diagnostics = await apply_add(manifest, options, client, allow_paths=False)
    except VersionLookupFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except DepEditError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to add dependencies")
        raise HTTPException(status_code=500, detail=f"Error processing manifest: {str(e)}")

    return _response(
        EditReport(
            manifest_path=manifest.path,
            original_content=manifest.raw,
            updated_content=manifest.to_string(),
            added=added,
            diagnostics=diagnostics,
        )
    )


@app.post("/api/remove", response_model=EditResponse)
async def remove_dependencies(request: RemoveRequest):
    """Remove dependencies from manifest text."""
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="No content provided")
    if request.dev and request.build:
        raise HTTPException(status_code=400, detail="`dev` and `build` are mutually exclusive")

    try:
        manifest = Manifest.from_string(request.content)
        removed = apply_remove(manifest, request.crates, section_for(dev=request.dev, build=request.build))
    except DepEditError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _response(
        EditReport(
            manifest_path=manifest.path,
            original_content=manifest.raw,
            updated_content=manifest.to_string(),
            removed=removed,
        )
    )


@app.get("/api/features/{name}", response_model=FeaturesResponse)
async def crate_features(
    name: str,
    version: Optional[str] = None,
    features: Optional[str] = None,
    default_features: bool = True,
):
    """Show which features of a published crate a dependency would enable."""
    requested = list(parse_features(features or ""))
    client = RegistryClient()
    try:
        if version is None:
            latest = await client.get_latest_dependency(name)
            name, version, available = latest.name, latest.version, latest.available_features
        else:
            available = await client.get_features(name, version)
    except VersionLookupFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except DepEditError as e:
        raise HTTPException(status_code=400, detail=str(e))

    report = activated_features(requested, default_features, available)
    return FeaturesResponse(
        name=name,
        version=version,
        activated=report.activated,
        deactivated=report.deactivated,
    )
