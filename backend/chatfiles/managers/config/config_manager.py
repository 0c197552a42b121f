"""
Configuration management for the chat file layer.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from chatfiles.file_config import DEFAULT_FILE_POLICIES, FilePolicy
from chatfiles.managers.config.config_models import AppSettings, FilePolicyConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads application settings and the upload policy table."""

    def __init__(self, backend_root: Optional[Path] = None):
        self._backend_root = backend_root or Path(__file__).parent.parent.parent.parent
        self._app_settings: Optional[AppSettings] = None
        self._file_policies: Optional[Tuple[FilePolicy, ...]] = None

        # Load environment variables from .env file
        dotenv_path = self._backend_root.parent / ".env"
        load_dotenv(dotenv_path=dotenv_path)
        logger.info(f"Loading .env from {dotenv_path.resolve()}")

    def _search_paths(self, file_name: str) -> List[Path]:
        """Generate common search paths for a configuration file."""
        candidates: List[Path] = [
            Path("../config/overrides") / file_name,
            Path("../config/defaults") / file_name,
            Path(file_name),
            Path(f"../{file_name}"),
        ]

        return candidates

    def _load_policy_file(self, path: Path) -> Tuple[FilePolicy, ...]:
        """Parse a YAML or JSON policy file into FilePolicy records."""
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        # Accept either {"policies": [...]} or a bare list
        if isinstance(data, list):
            data = {"policies": data}
        config = FilePolicyConfig(**data)
        if not config.policies:
            raise ValueError("Policy file defines no policies")
        return tuple(config.policies)

    @property
    def app_settings(self) -> AppSettings:
        """Get application settings (cached)."""
        if self._app_settings is None:
            try:
                self._app_settings = AppSettings()
                logger.info("Application settings loaded successfully")
            except Exception as e:
                logger.error(f"Failed to load application settings: {e}")
                self._app_settings = AppSettings.model_construct()
        return self._app_settings

    @property
    def file_policies(self) -> Tuple[FilePolicy, ...]:
        """Get the upload policy table (cached), falling back to the defaults."""
        if self._file_policies is None:
            file_paths = self._search_paths(self.app_settings.file_policy_file)
            for path in file_paths:
                if not path.exists():
                    continue
                try:
                    self._file_policies = self._load_policy_file(path)
                    logger.info(
                        f"Loaded {len(self._file_policies)} file policies from {path}"
                    )
                    break
                except (yaml.YAMLError, json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
                    logger.error(f"Invalid file policy config in {path}: {e}")
                    continue

            if self._file_policies is None:
                logger.info("Using default file policies")
                self._file_policies = DEFAULT_FILE_POLICIES

        return self._file_policies

    def reload(self) -> None:
        """Drop cached settings so the next access re-reads them."""
        self._app_settings = None
        self._file_policies = None


# Global configuration manager instance
config_manager = ConfigManager()
