"""Helm CLI abstractions.

- commands: argument building for helm release actions
- runner: async subprocess execution with cancellation handling

Usage:
    from helmguard.infra.helm import CommandRunner, HelmCommands

    helm = HelmCommands(CommandRunner())
    result = await helm.status("web", "prod")
"""

from .commands import HelmCommands
from .runner import CommandRunner
from .types import CommandResult

__all__ = [
    "CommandResult",
    "CommandRunner",
    "HelmCommands",
]
