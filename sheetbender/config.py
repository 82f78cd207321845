# sheetbender/config.py
"""
YAML configuration for sheetbender.

A config file holds global settings and named export definitions::

    # sheetbender.yml
    settings:
      default_timezone: '+08:00'
      default_chunk_size: 500
      logging:
        directory: /var/log/exports

    exports:
      active_users:
        collection: users
        chunk_size: 100
        columns:
          - {path: [name], default_title: Name}
          - {path: [posts, title], default_title: Post Title}
        find:
          filter: {status: active}
          sort: [-createdAt]
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .defaults import settings
from .utils import reset_format_cache

logger = logging.getLogger(__name__)
__all__ = ['ConfigManager', 'set_config_file', 'get_setting', 'get_export', 'CONFIG_FILENAMES']

CONFIG_FILENAMES = ('sheetbender.yml', 'sheetbender.yaml')


class ConfigManager:
    """
    Load and manage a sheetbender YAML config file.

    Settings from the file are merged into the global ``defaults.settings``
    dict on load, so every module sees them.

    Configuration Locations
    -----------------------
    ConfigManager searches for configuration files in this order:

    1. File specified in config_file parameter
    2. ``./sheetbender.yml`` then ``./sheetbender.yaml``
    3. ``~/.config/sheetbender.yml`` then ``~/.config/sheetbender.yaml``

    Parameters
    ----------
    config_file : str or Path, optional
        Path to YAML config file. If None, searches standard locations.

    Attributes
    ----------
    config_file : Path
        Path to the loaded configuration file
    config : dict
        Parsed configuration dictionary

    Raises
    ------
    FileNotFoundError
        If no config file is found
    ValueError
        If the file is not valid YAML or its sections are malformed

    Example
    -------
    ::

        config = ConfigManager('exports.yml')
        job = ExportJob.from_dict(config.get_export('active_users'), catalog)
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._apply_settings()

    @staticmethod
    def candidates() -> List[Path]:
        local = [Path(name) for name in CONFIG_FILENAMES]
        user = [Path.home() / '.config' / name for name in CONFIG_FILENAMES]
        return local + user

    def _find_config_file(self, config_file: Optional[Union[str, Path]]) -> Path:
        if config_file:
            path = Path(config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_file}")
            return path

        candidates = self.candidates()
        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise FileNotFoundError(
            "No config file found. Looked in: " + ", ".join(str(c) for c in candidates)
        )

    def _load_config(self) -> Dict[str, Any]:
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to load config file {self.config_file}: {e}") from e

        if not isinstance(config, dict):
            raise ValueError(f"Invalid config file {self.config_file}.")

        if not isinstance(config.get('settings', {}), dict):
            raise ValueError(f"Invalid config file {self.config_file}: 'settings' must be a dictionary")

        exports = config.get('exports', {})
        if not isinstance(exports, dict):
            raise ValueError(f"Invalid config file {self.config_file}: 'exports' must be a dictionary")
        for name, export in exports.items():
            if not isinstance(export, dict) or not export.get('collection'):
                raise ValueError(f"Invalid export '{name}' in {self.config_file}: 'collection' is required")
            if not isinstance(export.get('columns'), list) or not export['columns']:
                raise ValueError(f"Invalid export '{name}' in {self.config_file}: 'columns' must be a non-empty list")

        logger.info(f"Loaded config from {self.config_file}")
        return config

    def _apply_settings(self) -> None:
        config_settings = self.config.get('settings', {})
        for key, value in config_settings.items():
            # nested blocks (logging) are merged, not replaced
            if isinstance(value, dict) and isinstance(settings.get(key), dict):
                settings[key].update(value)
            else:
                settings[key] = value
        reset_format_cache()
        if config_settings:
            logger.debug(f"Applied settings: {sorted(config_settings)}")

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get a setting from the config file.

        Args:
            key: Setting key (supports dot notation like 'logging.level')
            default: Default value if key not found

        Example:
            tz = config.get_setting('default_timezone', '+00:00')
        """
        value = self.config.get('settings', {})
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any) -> None:
        """Set a setting (dot notation allowed), save the file and re-apply settings."""
        current = self.config.setdefault('settings', {})
        keys = key.split('.')
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value
        self._save_config()
        self._apply_settings()

    def get_export(self, name: str) -> Dict[str, Any]:
        """
        Get a named export definition, ready for ``ExportJob.from_dict``.

        Raises:
            ValueError: if no export of that name is defined
        """
        exports = self.config.get('exports', {})
        if name not in exports:
            raise ValueError(
                f"Export '{name}' not found in config. Available exports: {list(exports)}"
            )
        return dict(exports[name])

    def list_exports(self) -> List[str]:
        return list(self.config.get('exports', {}).keys())

    def add_export(self, name: str, definition: Dict[str, Any]) -> None:
        """Add or replace a named export definition and save the file."""
        if not definition.get('collection') or not definition.get('columns'):
            raise ValueError("An export definition needs 'collection' and 'columns'")
        self.config.setdefault('exports', {})[name] = definition
        self._save_config()
        logger.info(f"Export '{name}' saved to {self.config_file}")

    def _save_config(self) -> None:
        """Save config with settings first and exports sorted by name."""
        ordered_config = {}
        if 'settings' in self.config:
            ordered_config['settings'] = self.config['settings']
        if 'exports' in self.config:
            ordered_config['exports'] = dict(sorted(self.config['exports'].items()))
        for key, value in self.config.items():
            if key not in ordered_config:
                ordered_config[key] = value

        tmp_file = self.config_file.with_name(self.config_file.name + '.tmp')
        with open(tmp_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(ordered_config, f, default_flow_style=False, sort_keys=False,
                           allow_unicode=True)
        os.replace(tmp_file, self.config_file)


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def set_config_file(config_file: Union[str, Path]) -> ConfigManager:
    """Set the configuration file to use globally."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def _get_manager(config_file: Optional[Union[str, Path]] = None) -> Optional[ConfigManager]:
    global _config_manager
    if config_file:
        return ConfigManager(config_file)
    if _config_manager is None:
        try:
            _config_manager = ConfigManager()
        except FileNotFoundError:
            logger.debug("No sheetbender config file found, using built-in settings")
            return None
    return _config_manager


def get_setting(key: str, default: Any = None, config_file: Optional[Union[str, Path]] = None) -> Any:
    """
    Get a setting value.

    Looks in the config file first, then in the built-in ``defaults.settings``.

    Example:
        chunk_size = get_setting('default_chunk_size')
        level = get_setting('logging.level', 'INFO')
    """
    manager = _get_manager(config_file)
    missing = object()
    if manager is not None:
        value = manager.get_setting(key, missing)
        if value is not missing:
            return value

    value = settings
    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def get_export(name: str, config_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Get a named export definition from the config file.

    Example:
        job = ExportJob.from_dict(get_export('active_users'), catalog)
    """
    manager = _get_manager(config_file)
    if manager is None:
        raise FileNotFoundError("No config file found; cannot look up export "
                                f"'{name}'")
    return manager.get_export(name)
