"""Read config/system.yaml into a validated SystemConfig."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .models import SystemConfig

logger = logging.getLogger(__name__)

SYSTEM_CONFIG_FILE = Path("config") / "system.yaml"


class ConfigLoadError(Exception):
    """The configuration file could not be read or is not a YAML mapping."""
    pass


class ConfigValidationError(ConfigLoadError):
    """The configuration file parsed but some values are invalid."""

    def __init__(self, file_path: Path, errors: list[dict]):
        self.file_path = Path(file_path)
        self.errors = errors
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in errors
        )
        super().__init__(f"Invalid configuration in {self.file_path}: {problems}")


class ConfigLoader:
    """Locate and validate the service configuration under a base directory."""

    def __init__(self, config_dir: Path = Path(".")):
        self.config_dir = Path(config_dir)

    @property
    def system_config_path(self) -> Path:
        return self.config_dir / SYSTEM_CONFIG_FILE

    @staticmethod
    def read_document(file_path: Path) -> Dict[str, Any]:
        """
        Parse a YAML file whose top level must be a mapping.

        An empty file reads as an empty mapping.

        Raises:
            ConfigLoadError: Unreadable file, bad YAML or a non-mapping document
        """
        try:
            text = Path(file_path).read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigLoadError(f"Cannot read {file_path}: {e}") from e

        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {file_path}: {e}") from e

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigLoadError(
                f"{file_path} must hold a mapping of settings, not {type(document).__name__}"
            )
        return document

    def load_system_config(self, file_path: Optional[Path] = None) -> SystemConfig:
        """
        Load the system configuration, using defaults when the file is absent.

        Raises:
            ConfigLoadError: The file exists but cannot be parsed
            ConfigValidationError: A setting fails validation
        """
        path = Path(file_path) if file_path is not None else self.system_config_path
        if not path.is_file():
            logger.info(f"No configuration at {path}, using defaults")
            return SystemConfig()

        document = self.read_document(path)
        try:
            config = SystemConfig.model_validate(document)
        except ValidationError as e:
            raise ConfigValidationError(path, e.errors()) from e

        logger.info(f"Loaded configuration from {path}")
        return config
