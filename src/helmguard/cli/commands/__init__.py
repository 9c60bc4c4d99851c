"""CLI command groups.

Command Groups:
- release: Helm release execution with health verification
"""

from .release import release_app

__all__ = [
    "release_app",
]
