"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from workshop_emu.exceptions import ConfigurationError
from workshop_emu.models.config import EmuConfig

log = logging.getLogger(__name__)

DEFAULT_ITEMS_DIRNAME = "items"


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    @property
    def default_items_path(self) -> Path:
        return self.config_file_path.parent / DEFAULT_ITEMS_DIRNAME

    def _defaults(self) -> EmuConfig:
        return EmuConfig.model_construct(items_path=str(self.default_items_path))

    def load_config(self, cli_options: dict[str, Any] | None = None) -> EmuConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated EmuConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'workshop-emu init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self.get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return EmuConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = self._defaults()
        for key in sorted(EmuConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = self._defaults()
        try:
            return {
                "items_path": section.get("items_path", defaults.items_path),
                "api_base_url": section.get("api_base_url", defaults.api_base_url),
                "storage_url_template": section.get(
                    "storage_url_template", defaults.storage_url_template
                ),
                "download_format": section.get(
                    "download_format", defaults.download_format
                ),
                "stall_timeout": section.getfloat(
                    "stall_timeout", defaults.stall_timeout
                ),
                "request_timeout": section.getfloat(
                    "request_timeout", defaults.request_timeout
                ),
                "poll_interval": section.getfloat(
                    "poll_interval", defaults.poll_interval
                ),
                "max_concurrent_installs": section.getint(
                    "max_concurrent_installs", defaults.max_concurrent_installs
                ),
                "unsubscribe_wait_attempts": section.getint(
                    "unsubscribe_wait_attempts", defaults.unsubscribe_wait_attempts
                ),
                "unsubscribe_wait_interval": section.getfloat(
                    "unsubscribe_wait_interval", defaults.unsubscribe_wait_interval
                ),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = self._defaults()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(EmuConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = str(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
