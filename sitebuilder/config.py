"""Configuration management."""

import configparser
import copy
import logging
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "paths": {
        "settings": "site.ini",
        "modules": "modules",
        "js_lib": "third_party/zepto.min.js",
        "entry": "index.php",
        "output": "site",
        "config": "site.rc",
        "js": "site.js",
        "css": "site.css",
        "config_map": "config_map.html",
    },
    "compression": {
        "timeout": None,
        "strict": False,
    },
    "identifiers": {
        "cache_bytes": 32,
        "site_bytes": 64,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

CONFIG_NAMES = ("sitebuild.yaml", "config/sitebuild.yaml")

_config: Dict[str, Any] = {}
_base_path: Path = None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = None, root: str = ".") -> Dict[str, Any]:
    """
    Load the build tool configuration.

    Looks for sitebuild.yaml or config/sitebuild.yaml under root when no
    path is given. A missing file is fine: the defaults apply.

    Args:
        config_path: Explicit YAML config file
        root: Application root relative paths resolve against

    Returns:
        Merged configuration dict
    """
    global _config, _base_path

    _base_path = Path(root).resolve()

    if config_path is None:
        for name in CONFIG_NAMES:
            if (_base_path / name).exists():
                config_path = str(_base_path / name)
                break

    overrides = {}
    if config_path is not None:
        with open(config_path) as f:
            overrides = yaml.safe_load(f) or {}
        logger.info(f"Loaded build configuration from {config_path}")
    else:
        logger.debug("No build configuration file found, using defaults")

    _config = _deep_merge(DEFAULTS, overrides)

    # Resolve relative paths
    _resolve_paths()

    return _config


def _resolve_paths():
    """Resolve relative paths in config to absolute paths."""
    global _config

    for key, value in _config["paths"].items():
        path = Path(value)
        if not path.is_absolute():
            _config["paths"][key] = str(_base_path / path)

    log_file = _config["logging"].get("file")
    if log_file and not Path(log_file).is_absolute():
        _config["logging"]["file"] = str(_base_path / log_file)


def get_config() -> Dict[str, Any]:
    """Get the loaded configuration."""
    if not _config:
        load_config()
    return _config


def get(key: str, default: Any = None) -> Any:
    """Get a config value by dot-notation key (e.g., 'compression.timeout')."""
    if not _config:
        load_config()

    keys = key.split(".")
    value = _config
    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


@dataclass
class BuildPaths:
    """Every file and directory a build reads or writes."""
    root: Path
    settings: Path
    modules: Path
    js_lib: Path
    entry: Path
    output: Path
    config: Path
    js: Path
    css: Path
    config_map: Path

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "BuildPaths":
        """Build from the loaded configuration, whose paths are already absolute."""
        config = config or get_config()
        paths = config["paths"]
        return cls(root=_base_path, **{key: Path(paths[key]) for key in DEFAULTS["paths"]})

    @classmethod
    def for_root(cls, root: Path) -> "BuildPaths":
        """Default layout under an application root."""
        root = Path(root).resolve()
        return cls(root=root, **{key: root / value for key, value in DEFAULTS["paths"].items()})


INI_TRUE = ("true", "on", "yes")
INI_FALSE = ("false", "off", "no", "none", "null")


def _ini_value(value: str) -> str:
    """Unquote a value; bare boolean words become "1" or ""."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    if value.lower() in INI_TRUE:
        return "1"
    if value.lower() in INI_FALSE:
        return ""
    return value


def _parse_ini(text: str) -> Dict[str, Any]:
    # Keys outside any section are allowed; sections are flattened.
    parser = configparser.ConfigParser(interpolation=None, strict=False,
                                       inline_comment_prefixes=(";",))
    parser.optionxform = str
    parser.read_string("[__root__]\n" + text)

    settings: Dict[str, Any] = {}
    for section in parser.sections():
        for key, value in parser.items(section):
            settings[key] = _ini_value(value or "")
    return settings


def load_settings(path: Path) -> Dict[str, Any]:
    """
    Load the site settings file.

    .yaml/.yml files are parsed with PyYAML, anything else as ini. A missing
    or empty file gives an empty dict.

    Args:
        path: Settings file

    Returns:
        Flat settings dict
    """
    path = Path(path)
    if not path.is_file():
        logger.warning(f"Settings file not found: {path}")
        return {}

    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        settings = yaml.safe_load(text) or {}
        if not isinstance(settings, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
    else:
        settings = _parse_ini(text)

    logger.debug(f"Loaded {len(settings)} settings from {path}")
    return settings
