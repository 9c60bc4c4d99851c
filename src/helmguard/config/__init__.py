"""Configuration for helmguard.

- constants: frozen defaults shared by every layer
- models: pydantic schema of ``helmguard.yaml``
- loader: YAML loading with ``${VAR}`` substitution

Only the constants are re-exported here; the loader pulls in the release
models and is imported from ``helmguard.config.loader`` directly.
"""

from .constants import DEFAULT_CONSTANTS, DeploymentConstants

__all__ = [
    "DEFAULT_CONSTANTS",
    "DeploymentConstants",
]
