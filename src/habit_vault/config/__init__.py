"""Client configuration loading and validation."""

from habit_vault.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ClientConfig,
    ConfigLoadError,
    ConfigValidationError,
    ConfigValidationIssue,
    load_config,
    validate_config,
)

__all__ = [
    "ClientConfig",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "load_config",
    "validate_config",
]
