"""
Configuration handling for the darktable lens fixer.
"""

import json
import os
import re
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any


DEFAULT_LIBRARY_PATH = "~/.config/darktable/library.db"


@dataclass
class AppConfig:
    """Main application configuration."""
    library_path: str = DEFAULT_LIBRARY_PATH
    data_path: Optional[str] = None  # Defaults to data.db next to the library
    exiftool_path: Optional[str] = None
    overwrite_original: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None
    debug_mode: bool = False
    max_retries: int = 3
    db_busy_timeout: int = 5000
    # Extra rules merged over the built-in tables
    lens_names: Dict[str, str] = field(default_factory=dict)
    crop_factor_fix: List[str] = field(default_factory=list)
    lens_presets: List[Dict[str, Any]] = field(default_factory=list)
    cameras: List[str] = field(default_factory=list)
    films: List[str] = field(default_factory=list)


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute environment variables in string values.

    Args:
        value: Value to process for environment variables

    Returns:
        Value with environment variables substituted
    """
    if not isinstance(value, str):
        return value

    # Pattern to match ${ENV_VAR} syntax
    pattern = r'\${([^}]+)}'

    def replace_env_var(match):
        env_var = match.group(1)
        env_value = os.environ.get(env_var)
        if env_value is None:
            print(f"Warning: Environment variable {env_var} not found")
            return ""
        return env_value

    return re.sub(pattern, replace_env_var, value)


def _process_config_dict(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process a configuration dictionary to substitute environment variables.

    Only values are substituted; keys of nested mappings (lens names) are kept.
    """
    result = {}

    for key, value in config_dict.items():
        if isinstance(value, dict):
            result[key] = _process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _process_config_dict(item) if isinstance(item, dict) else _substitute_env_vars(item)
                for item in value
            ]
        else:
            result[key] = _substitute_env_vars(value)

    return result


def _validate_config_dict(config_dict: Dict[str, Any]) -> None:
    """
    Check field names and the shape of the rule extensions.

    Raises:
        ValueError: If the configuration is invalid
    """
    known_fields = set(AppConfig.__dataclass_fields__)
    unknown = sorted(set(config_dict) - known_fields)
    if unknown:
        raise ValueError(f"Unknown configuration field(s): {', '.join(unknown)}")

    lens_names = config_dict.get('lens_names', {})
    if not isinstance(lens_names, dict) or not all(isinstance(v, str) for v in lens_names.values()):
        raise ValueError("lens_names must be a mapping of EXIF lens name to corrected name")

    for name in ('cameras', 'films', 'crop_factor_fix', 'lens_presets'):
        value = config_dict.get(name, [])
        if not isinstance(value, list):
            raise ValueError(f"{name} must be a list, got {type(value).__name__}")

    for name in ('cameras', 'films'):
        for entry in config_dict.get(name, []):
            if not isinstance(entry, str) or not entry:
                raise ValueError(f"Invalid {name} entry (expected a name): {entry!r}")

    for key in config_dict.get('crop_factor_fix', []):
        if not isinstance(key, str) or '|' not in key:
            raise ValueError(f"Invalid crop_factor_fix entry (expected 'lens|camera'): {key!r}")

    for preset in config_dict.get('lens_presets', []):
        if not isinstance(preset, dict) or not preset.get('model'):
            raise ValueError(f"Lens preset without a model name: {preset!r}")
        for key in ('focal_length', 'fl', 'aperture', 'ap'):
            value = preset.get(key)
            if value in (None, ""):
                continue
            try:
                float(value)
            except (TypeError, ValueError):
                raise ValueError(f"Lens preset {preset['model']!r} has a non-numeric {key}: {value!r}")

    log_level = config_dict.get('log_level', 'INFO')
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ValueError(f"Unsupported log level: {log_level}")


def load_config(config_path: Optional[str]) -> AppConfig:
    """
    Load and validate configuration from JSON file.

    A missing file is not an error: the built-in defaults are returned so the
    tool works without any configuration.

    Args:
        config_path: Path to the configuration JSON file

    Returns:
        AppConfig object

    Raises:
        ValueError: If the configuration is invalid
        RuntimeError: If the configuration file cannot be loaded
    """
    if not config_path:
        return AppConfig()

    config_path = os.path.abspath(os.path.expanduser(config_path))
    if not os.path.exists(config_path):
        return AppConfig()

    try:
        with open(config_path, 'r') as cfg:
            config_dict = json.load(cfg)
    except (json.JSONDecodeError, IOError) as e:
        raise RuntimeError(f"Failed to load configuration from {config_path}: {str(e)}")

    if not isinstance(config_dict, dict):
        raise ValueError(f"Configuration root must be an object: {config_path}")

    config_dict = _process_config_dict(config_dict)
    _validate_config_dict(config_dict)

    return AppConfig(**config_dict)


def save_config(config: AppConfig, config_path: str) -> None:
    """
    Save configuration to JSON file.

    Args:
        config: AppConfig object
        config_path: Path to save the configuration

    Raises:
        RuntimeError: If the configuration cannot be saved
    """
    try:
        with open(config_path, 'w') as f:
            json.dump(asdict(config), f, indent=2)
    except (IOError, TypeError) as e:
        raise RuntimeError(f"Failed to save configuration: {str(e)}")
