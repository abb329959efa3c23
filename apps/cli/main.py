"""CLI application for depedit."""

import asyncio
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from depedit.commands import add_dependencies, remove_dependencies
from depedit.config import get_settings
from depedit.errors import DepEditError
from depedit.models import AddedDependency, Diagnostic, RemovedDependency, describe_section
from depedit.registry import RegistryClient
from depedit.resolver import AddOptions, UnstableOption

logger = logging.getLogger(__name__)

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True, highlight=False)

INDENT = " " * 13


def _status(label: str, message: str, style: str = "bold green") -> None:
    err_console.print(f"[{style}]{label:>12}[/] {escape(message)}")


def print_added(event: AddedDependency) -> None:
    """Print the progress line and feature summary of an added dependency."""
    message = event.dependency.name
    version = event.display_version()
    if version:
        message += f" {version}"
    message += " to"
    if event.optional:
        message += " optional"
    message += f" {describe_section(event.section)}."
    _status("Adding", message)

    report = event.features
    if report.activated or report.deactivated:
        err_console.print(f"{INDENT}Features:")
        for feature in report.activated:
            err_console.print(f"{INDENT}[bold green]+[/] {escape(feature)}")
        for feature in report.deactivated:
            err_console.print(f"{INDENT}[bold yellow]-[/] {escape(feature)}")


def print_removed(event: RemovedDependency) -> None:
    _status("Removing", f"{event.name} from {describe_section(event.section)}")


def print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        _status("Warning:", diagnostic.message, style="bold yellow")


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


app = typer.Typer(
    name="depedit",
    help="depedit - Add and remove dependencies in Cargo.toml manifests",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """depedit - Add and remove dependencies in Cargo.toml manifests."""
    _setup_logging(verbose)


@app.command()
def add(
    crates: list[str] = typer.Argument(
        ...,
        metavar="DEP_ID...",
        help="Package to add: <name>, <name>@<version-req> or <path>, optionally followed by +<feature>",
    ),
    default_features: bool | None = typer.Option(
        None, "--default-features/--no-default-features", help="Re-enable or disable the default features"
    ),
    features: list[str] | None = typer.Option(
        None, "--features", "-F", help="Space or comma separated list of features to activate"
    ),
    optional: bool | None = typer.Option(
        None, "--optional/--no-optional", help="Mark the dependency as optional or required"
    ),
    rename: str | None = typer.Option(None, "--rename", "-r", help="Rename the dependency"),
    registry: str | None = typer.Option(None, "--registry", help="Package registry for this dependency"),
    dev: bool = typer.Option(False, "--dev", "-D", help="Add as development dependency"),
    build: bool = typer.Option(False, "--build", "-B", help="Add as build dependency"),
    target: str | None = typer.Option(None, "--target", help="Add as dependency to the given target platform"),
    manifest_path: Path | None = typer.Option(None, "--manifest-path", help="Path to Cargo.toml"),
    package: str | None = typer.Option(None, "--package", "-p", help="Package to modify"),
    offline: bool = typer.Option(False, "--offline", help="Run without accessing the network"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Don't actually write the manifest"),
    quiet: bool = typer.Option(False, "--quiet", help="Do not print any output in case of success"),
    unstable: list[UnstableOption] | None = typer.Option(None, "-Z", help="Unstable (nightly-only) flags"),
    git: str | None = typer.Option(None, "--git", help="Git repository location"),
    branch: str | None = typer.Option(None, "--branch", help="Git branch to download the crate from"),
    tag: str | None = typer.Option(None, "--tag", help="Git tag to download the crate from"),
    rev: str | None = typer.Option(None, "--rev", help="Git reference to download the crate from"),
) -> None:
    """Add dependencies to a Cargo.toml manifest file."""
    options = AddOptions(
        crates=crates,
        features=features,
        optional=optional,
        default_features=default_features,
        rename=rename,
        registry=registry,
        dev=dev,
        build=build,
        target=target,
        git=git,
        branch=branch,
        tag=tag,
        rev=rev,
        unstable=list(unstable or []),
    )

    try:
        client = RegistryClient(
            registry=registry,
            offline=True if offline else None,
            settings=get_settings(),
        )
        report = asyncio.run(
            add_dependencies(
                options,
                manifest_path=manifest_path,
                pkgid=package,
                dry_run=dry_run,
                client=client,
            )
        )
    except DepEditError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not quiet:
        for event in report.added:
            print_added(event)
    print_diagnostics(report.diagnostics)


@app.command("rm")
def remove(
    crates: list[str] = typer.Argument(..., metavar="CRATE...", help="Crates to be removed"),
    dev: bool = typer.Option(False, "--dev", "-D", help="Remove crate as development dependency"),
    build: bool = typer.Option(False, "--build", "-B", help="Remove crate as build dependency"),
    manifest_path: Path | None = typer.Option(
        None, "--manifest-path", help="Path to the manifest to remove a dependency from"
    ),
    package: str | None = typer.Option(
        None, "--package", "-p", help="Package id of the crate to remove this dependency from"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Don't actually write the manifest"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not print any output in case of success"),
) -> None:
    """Remove dependencies from a Cargo.toml manifest file."""
    try:
        report = remove_dependencies(
            crates,
            dev=dev,
            build=build,
            manifest_path=manifest_path,
            pkgid=package,
            dry_run=dry_run,
        )
    except DepEditError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not quiet:
        for event in report.removed:
            print_removed(event)
    print_diagnostics(report.diagnostics)


if __name__ == "__main__":
    app()
