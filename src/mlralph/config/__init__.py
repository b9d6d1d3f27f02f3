"""Configuration model and parser for ``.ml-ralph/config.yaml``."""

from mlralph.config.models import RalphConfig
from mlralph.config.parser import ConfigError, config_path, load_config

__all__ = [
    "ConfigError",
    "RalphConfig",
    "config_path",
    "load_config",
]
