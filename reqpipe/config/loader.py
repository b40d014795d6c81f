"""Client configuration file loader."""

import hashlib
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from reqpipe.config.schemas import ClientConfigFile
from reqpipe.http.models import RequestConfig


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


def load_config_file(file_path: Path) -> ClientConfigFile:
    """Load and validate a client configuration YAML file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Validated ClientConfigFile.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If YAML parsing fails.
        ConfigValidationError: If the content does not match the schema.
    """
    log = logger.bind(component="config", file_path=str(file_path))
    log.info("loading_config_file")

    content_bytes = file_path.read_bytes()
    checksum = hashlib.sha256(content_bytes).hexdigest()
    try:
        parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
    except yaml.YAMLError as e:
        log.error("config_yaml_error", error=str(e))
        raise

    try:
        config = ClientConfigFile.model_validate(parsed)
    except ValidationError as e:
        errors = [
            {
                "loc": ".".join(str(loc) for loc in err["loc"]),
                "msg": err["msg"],
                "type": err["type"],
            }
            for err in e.errors()
        ]
        log.error(
            "config_validation_failed",
            validation_error_count=len(errors),
            errors=errors,
        )
        raise ConfigValidationError(errors, str(file_path)) from e

    log.info("config_file_loaded", file_sha256=checksum)
    return config


def load_base_config(file_path: Path | str) -> RequestConfig:
    """Load a YAML file into a base RequestConfig for ``HttpClient``.

    Args:
        file_path: Path to the YAML file.

    Returns:
        RequestConfig built from the file.
    """
    return load_config_file(Path(file_path)).to_request_config()
