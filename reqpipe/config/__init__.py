"""Client configuration file loading and validation."""

from reqpipe.config.loader import ConfigValidationError, load_base_config, load_config_file
from reqpipe.config.schemas import ClientConfigFile, RetryConfig


__all__ = [
    "ClientConfigFile",
    "ConfigValidationError",
    "RetryConfig",
    "load_base_config",
    "load_config_file",
]
