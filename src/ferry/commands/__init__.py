"""CLI command implementations for ferry.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .deploy import deploy
from .init import init
from .rollback import rollback
from .status import status

__all__ = [
    "deploy",
    "init",
    "rollback",
    "status",
]
