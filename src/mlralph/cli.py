"""Root CLI group and version flag."""

import signal

import click

from mlralph import __version__
from mlralph.commands.init import init
from mlralph.commands.replay import replay
from mlralph.commands.run import run

# Keep a closed stdout pipe from killing the process mid-echo.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)


@click.group()
@click.version_option(version=__version__, prog_name="mlralph")
def cli() -> None:
    """ML-Ralph — autonomous ML agent loop driven by the Claude CLI."""


cli.add_command(init)
cli.add_command(run)
cli.add_command(replay)
