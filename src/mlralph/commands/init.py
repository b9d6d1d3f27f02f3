"""mlralph init — scaffold the ``.ml-ralph/`` state directory."""

from __future__ import annotations

from pathlib import Path

import click

from mlralph.project import ProjectError, init_project


@click.command()
@click.option(
    "-C",
    "--project",
    "project_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project directory.",
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite an existing CLAUDE.md and the agent instructions.",
)
def init(project_dir: Path, force: bool) -> None:
    """Set up an ML-Ralph project in the given directory."""
    root = project_dir.resolve()
    try:
        created = init_project(root, force=force)
    except ProjectError as exc:
        raise click.ClickException(str(exc)) from exc

    for path in created:
        click.echo(f"  Created {path.relative_to(root)}")

    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Describe the problem and success criteria in .ml-ralph/prd.json")
    click.echo("  2. Run `mlralph run` to start the agent loop")
