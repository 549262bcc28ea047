"""Thin CLI wrapper for imagerecipe.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from imagerecipe import __version__
from imagerecipe.config import Settings, get_settings, print_settings_json

if TYPE_CHECKING:
    from imagerecipe.builds.orchestrator import Orchestrator

app = typer.Typer(
    name="imagerecipe",
    help="Image recipe builder - build OS images from declarative recipes",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"imagerecipe version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich, once per process."""
    root = logging.getLogger()
    if root.handlers:
        return
    handler = RichHandler(console=err_console, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Image recipe builder - build OS images from declarative recipes."""
    configure_logging(get_settings().log_level)


def _build_errors() -> tuple[type[Exception], ...]:
    from imagerecipe.actions.base import (
        ActionConfigError,
        ActionRunError,
        UnknownActionError,
    )
    from imagerecipe.builds.chroot import UnsupportedArchitectureError
    from imagerecipe.builds.overlay import OverlayError
    from imagerecipe.builds.runner import CommandExecutionError
    from imagerecipe.recipes.io import RecipeError
    from imagerecipe.sandbox.machine import SandboxError
    from imagerecipe.store.base import StoreError
    from imagerecipe.store.deploy import DeploymentError

    return (
        OSError,
        ValidationError,
        RecipeError,
        UnknownActionError,
        ActionConfigError,
        ActionRunError,
        UnsupportedArchitectureError,
        OverlayError,
        CommandExecutionError,
        StoreError,
        DeploymentError,
        SandboxError,
    )


def _prepare(
    recipe: Path,
    artifactdir: Path | None,
    internal_image: str | None,
    settings: Settings,
) -> "Orchestrator":
    """Load recipe and create the orchestrator for it."""
    from imagerecipe.builds.orchestrator import Orchestrator
    from imagerecipe.context import BuildContext
    from imagerecipe.recipes.io import load_recipe
    from imagerecipe.sandbox.machine import get_machine

    recipe_path = recipe.resolve()
    parsed = load_recipe(recipe_path)
    artifact_dir = (artifactdir or Path.cwd()).resolve()

    context = BuildContext.from_settings(
        settings,
        architecture=parsed.architecture,
        artifact_directory=artifact_dir,
        recipe_directory=recipe_path.parent,
        image=internal_image,
    )
    return Orchestrator(parsed, context, get_machine(settings), recipe_path)


@app.command()
def build(
    recipe: Annotated[Path, typer.Argument(help="Recipe YAML file")],
    artifactdir: Annotated[
        Path | None,
        typer.Option(
            "--artifactdir", help="Artifact directory (default: current directory)"
        ),
    ] = None,
    internal_image: Annotated[
        str | None,
        typer.Option("--internal-image", hidden=True),
    ] = None,
) -> None:
    """Build an image from a recipe.

    On the host this launches the sandbox and exits with its exit code;
    inside the sandbox (or with IMGRECIPE_SANDBOX=none) it runs the actions.
    """
    settings = get_settings()
    try:
        orchestrator = _prepare(recipe, artifactdir, internal_image, settings)
        exit_code = orchestrator.run()
    except _build_errors() as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if exit_code != 0:
        err_console.print(f"[red]Build failed with exit code {exit_code}[/red]")
        raise typer.Exit(code=exit_code)
    console.print("[green]Build succeeded[/green]")


@app.command()
def validate(
    recipe: Annotated[Path, typer.Argument(help="Recipe YAML file")],
    artifactdir: Annotated[
        Path | None,
        typer.Option(
            "--artifactdir", help="Artifact directory (default: current directory)"
        ),
    ] = None,
) -> None:
    """Parse a recipe and verify every action without building."""
    settings = get_settings()
    try:
        orchestrator = _prepare(recipe, artifactdir, None, settings)
        orchestrator.verify_all()
    except _build_errors() as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    actions = orchestrator.actions
    console.print(
        f"[green]Recipe OK[/green]: {len(actions)} action(s) for "
        f"{orchestrator.recipe.architecture}"
    )
    for index, action in enumerate(actions, start=1):
        console.print(f"  {index}. {action.action}: {action.display_name}")


@app.command("actions")
def list_actions(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the action kinds recipes can use."""
    from imagerecipe.actions import ACTION_REGISTRY, registered_actions

    kinds = registered_actions()
    if json_output:
        console.print(json.dumps(kinds, indent=2))
        return

    console.print(f"[bold]{len(kinds)} action kind(s):[/bold]")
    for kind in kinds:
        doc = (ACTION_REGISTRY[kind].__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        console.print(f"  [green]{kind}[/green]  {summary}")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Scratch directory:   {settings.scratch_dir}")
    console.print(f"  Root directory:      {settings.root_dir}")
    console.print(f"  Image mount:         {settings.mount_dir}")
    console.print()
    console.print("[bold]Sandbox:[/bold]")
    console.print(f"  Provider:            {settings.sandbox}")
    console.print(f"  fakemachine binary:  {settings.fakemachine_binary}")
    console.print(f"  Memory (MiB):        {settings.sandbox_memory or '(default)'}")
    console.print(f"  CPUs:                {settings.sandbox_cpus or '(default)'}")
    console.print()
    console.print("[bold]Execution:[/bold]")
    console.print(f"  Chroot backend:      {settings.chroot_backend}")
    console.print(
        f"  Host architecture:   {settings.host_architecture or '(detected)'}"
    )
    console.print(f"  Strict cleanup:      {settings.strict_cleanup}")
    console.print(f"  Log level:           {settings.log_level}")


if __name__ == "__main__":
    app()
