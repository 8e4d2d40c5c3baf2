"""CLI module for dlwatch.

This package provides the ``dlwatch`` command, its configuration loading and
the runner that maps an observation outcome to an exit code.
"""

from .config import (
    ConfigurationLoader,
    WatchConfiguration,
    load_configuration,
)
from .runner import (
    # Exit codes
    ExitCode,

    # Runner
    WatchRunner,
)

__all__ = [
    # Exit codes
    'ExitCode',

    # Runner
    'WatchRunner',

    # Configuration
    'ConfigurationLoader',
    'WatchConfiguration',
    'load_configuration',
]
