"""Tycana installer CLI entry point."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from tycana_installer import __version__
from tycana_installer.config import InstallerConfig
from tycana_installer.deploy import DeploymentEngine
from tycana_installer.domain import CriticalRestoreFailure, DeploymentStatus, InstallerError
from tycana_installer.resolver import resolve_platform

# All output goes to stderr, like the shell installers this replaces
console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=verbose)],
        force=True,
    )


def report_failure(error: InstallerError) -> None:
    """Print an installer error and exit with status 1."""
    if isinstance(error, CriticalRestoreFailure):
        console.print(
            Panel(
                f"{escape(error.message)}\n\n"
                f"No binary is installed at [bold]{error.final_path}[/bold].\n"
                f"Restore it manually:\n  mv {error.backup_path} {error.final_path}",
                title="CRITICAL: restore failed",
                border_style="bold red",
            )
        )
    else:
        console.print(f"[red]✗[/red] {error.stage.capitalize()} failed: {escape(error.message)}")
    raise SystemExit(1)


def build_config(ctx: click.Context, **overrides) -> InstallerConfig:
    return InstallerConfig.from_env(repo=ctx.obj.get("repo"), **overrides)


@click.group()
@click.version_option(__version__, prog_name="tycana-installer")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option("--repo", help="Release repository (owner/name)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, repo: str | None) -> None:
    """Install and upgrade the Tycana CLI."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["repo"] = repo
    setup_logging(verbose)


@cli.command()
def platform() -> None:
    """Show the detected platform and architecture."""
    try:
        target = resolve_platform()
    except InstallerError as e:
        report_failure(e)
    console.print(f"Detected platform: [cyan]{target}[/cyan]")


@cli.command()
@click.option("--version", "-V", "version", help="Release tag to install (default: latest)")
@click.option("--install-dir", "-d", type=click.Path(file_okay=False, path_type=Path), help="Install directory")
@click.option("--non-interactive", is_flag=True, help="Never prompt for credentials")
@click.pass_context
def install(ctx: click.Context, version: str | None, install_dir: Path | None, non_interactive: bool) -> None:
    """Install the Tycana CLI binary."""
    config = build_config(ctx, install_dir=install_dir, non_interactive=non_interactive or None)
    engine = DeploymentEngine(config)

    try:
        result = engine.install(version)
    except InstallerError as e:
        report_failure(e)

    console.print(f"[green]✓[/green] Tycana CLI {result.installed_version} installed successfully!")
    console.print(f"  Location: [cyan]{result.final_path}[/cyan]")


@cli.command()
@click.option("--non-interactive", is_flag=True, help="Never prompt for credentials")
@click.option(
    "--binary",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Installed binary to upgrade (default: found on PATH)",
)
@click.pass_context
def upgrade(ctx: click.Context, non_interactive: bool, binary: Path | None) -> None:
    """Upgrade the installed Tycana CLI to the latest release."""
    config = build_config(ctx, non_interactive=non_interactive or None)
    engine = DeploymentEngine(config)

    # Replace the real binary, not a symlink pointing at it
    if binary is not None:
        binary = binary.resolve()

    try:
        result = engine.upgrade(binary)
    except InstallerError as e:
        report_failure(e)

    if result.status == DeploymentStatus.ALREADY_CURRENT:
        console.print(f"[green]✓[/green] Already running the latest version ({result.installed_version})")
        console.print("No upgrade needed!")
        return

    console.print(
        f"[green]✓[/green] Successfully upgraded from {result.previous_version} to {result.installed_version}!"
    )
    if result.release_notes_url:
        console.print(f"  View release notes: [cyan]{result.release_notes_url}[/cyan]")


@cli.command()
@click.option(
    "--binary",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Installed binary to inspect (default: found on PATH)",
)
@click.pass_context
def check(ctx: click.Context, binary: Path | None) -> None:
    """Check whether a newer release is available."""
    engine = DeploymentEngine(build_config(ctx))

    try:
        status = engine.check(binary)
    except InstallerError as e:
        report_failure(e)

    if status.update_available:
        console.print(f"[yellow]→[/yellow] Update available: {status.current_version} → {status.latest.normalize()}")
        console.print("\nRun [cyan]tycana-installer upgrade[/cyan] to update")
    else:
        console.print(f"[green]✓[/green] Tycana CLI is up to date ({status.current_version})")
    console.print(f"  Installed at: [dim]{status.final_path}[/dim]")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
