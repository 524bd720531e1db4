"""CLI package for bb

Argument parsing lives in ``cli.main``; the ``bb auth`` handlers live in
``cli.auth_commands``.
"""

from cli.auth_commands import AuthCommands, CommandError
from cli.main import main

__all__ = [
    "AuthCommands",
    "CommandError",
    "main",
]
