"""
Configuration management
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.chatbridge/config.yaml"

_ENV_REF_RE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def _resolve_path(config_path: Optional[str]) -> Path:
    return Path(config_path or DEFAULT_CONFIG_PATH).expanduser()


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the config file, layered over :func:`get_default_config`.

    Args:
        config_path: config file path; ``~/.chatbridge/config.yaml`` when None

    Returns:
        config dict
    """
    path = _resolve_path(config_path)

    if not path.exists():
        logger.warning("Config file not found: %s, using defaults", path)
        return get_default_config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        logger.info("Config loaded: %s", path)
    except Exception as e:
        logger.error("Failed to load config: %s", e)
        return get_default_config()

    if not isinstance(loaded, dict):
        logger.error("Config root must be a mapping: %s", path)
        return get_default_config()
    return _deep_merge(get_default_config(), loaded)


def get_default_config() -> Dict[str, Any]:
    """
    Default configuration.

    Returns:
        default config dict
    """
    return {
        "chatbridge": {
            "assistant_name": "Andy",
            "trigger_pattern": None,
            "data_dir": "~/.chatbridge",
            "agent": {
                "url": "",
                "timeout": 30.0,
            },
            "web": {
                "host": "127.0.0.1",
                "port": 3000,
                "api_key": "",
            },
            "channels": {
                "lark": {
                    "enabled": False,
                    "app_id": "",
                    "app_secret": "",
                    "verification_token": "",
                    "webhook_path": "/lark/events",
                    "base_url": "https://open.larksuite.com",
                },
                "telegram": {
                    "enabled": False,
                    "bot_token": "",
                },
            },
        },
        "logging": {
            "level": "INFO",
        },
    }


def save_config(config: Dict[str, Any], config_path: Optional[str] = None):
    """
    Save the config file.

    Args:
        config: config dict
        config_path: config file path; ``~/.chatbridge/config.yaml`` when None
    """
    path = _resolve_path(config_path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True)
        logger.info("Config saved: %s", path)
    except Exception as e:
        logger.error("Failed to save config: %s", e)
        raise


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def resolve_env_refs(value: Any) -> Any:
    """Replace whole-string ``${ENV_VAR}`` references, recursively.

    Unset variables resolve to an empty string.
    """
    if isinstance(value, dict):
        return {k: resolve_env_refs(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_refs(v) for v in value]
    if isinstance(value, str):
        match = _ENV_REF_RE.match(value.strip())
        if match:
            return os.environ.get(match.group(1), "")
    return value


# ---------------------------------------------------------------------------
# Module-level cached config
# ---------------------------------------------------------------------------

_cached_config: Optional[Dict[str, Any]] = None
_cached_config_path: Optional[str] = None


def get_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Return a cached config dict, loading from disk on first call.

    If *config_path* differs from the previously cached path the config is
    reloaded automatically.
    """
    global _cached_config, _cached_config_path
    if _cached_config is None or config_path != _cached_config_path:
        _cached_config = load_config(config_path)
        _cached_config_path = config_path
    return _cached_config


def reload_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Force-reload config from disk and update the cache."""
    global _cached_config, _cached_config_path
    _cached_config = load_config(config_path)
    _cached_config_path = config_path
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (mainly for tests)."""
    global _cached_config, _cached_config_path
    _cached_config = None
    _cached_config_path = None
