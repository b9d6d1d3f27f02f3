"""ml-ralph — autonomous iteration loop around the Claude CLI."""

__version__ = "0.1.0"
