"""Configuration file loading."""

from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.config.models import ConfigData
from helmguard.config.utils import substitute_env_vars

CONFIG_PATH = Path(DEFAULT_CONSTANTS.CONFIG_FILE_NAME)


def load_config(file_path: Path | None = None) -> ConfigData:
    """
    Load ``helmguard.yaml`` with environment variable substitution.

    Args:
        file_path: Explicit config path. When omitted, ``helmguard.yaml`` in
                   the working directory is used if present, and built-in
                   defaults otherwise.

    Returns:
        Validated ConfigData

    Raises:
        ValueError: If a required environment variable is missing, the YAML
                    cannot be parsed, or validation fails
        FileNotFoundError: If an explicitly given file doesn't exist
    """
    if file_path is None:
        if not CONFIG_PATH.exists():
            logger.debug(f"No {CONFIG_PATH} found, using defaults")
            return ConfigData()
        file_path = CONFIG_PATH

    logger.info(f"Loading configuration from {file_path}")
    with open(file_path) as f:
        content = f.read()

    content = substitute_env_vars(content)

    try:
        loaded: dict[str, Any] | None = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    if loaded is None:
        return ConfigData()
    if not isinstance(loaded, dict):
        raise ValueError("Invalid YAML structure: expected a mapping at top level")

    try:
        return ConfigData(**loaded)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
