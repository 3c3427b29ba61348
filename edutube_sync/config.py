# edutube_sync/config.py
# Description: Configuration management for edutube_sync.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
#
#######################################################################################################################
#
# Functions:

# --- Constants ---
# Client ID recorded against every local mirror write made by this installation
DEFAULT_CLIENT_ID = "edutube_sync_local_instance_v1"

# --- Path to the configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "edutube_sync" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "edutube_sync"

# --- Environment overrides ---
ENV_API_BASE_URL = "EDUTUBE_API_BASE_URL"
ENV_API_TOKEN = "EDUTUBE_API_TOKEN"

CONFIG_TOML_CONTENT = """
# Configuration for edutube_sync
# Values here are merged over the built-in defaults; missing keys keep their defaults.

[api]
# Base URL of the course store (the /api/courses collection lives under it).
# Overridden by the EDUTUBE_API_BASE_URL environment variable.
base_url = "http://localhost:5000"
# Bearer credential for create/update/delete. Overridden by EDUTUBE_API_TOKEN.
token = ""
# Request timeout in seconds. 0 means no timeout.
timeout = 0
courses_endpoint = "/api/courses"

[sync]
poll_interval_ms = 5000
# Keep local copies of records whose remote write has not settled yet.
protect_in_flight_edits = true
# Also write the legacy keys (adminCourses, courses_data, user_courses) on every write.
mirror_legacy_keys = false
client_id = "edutube_sync_local_instance_v1"

[storage]
mirror_db_path = "~/.local/share/edutube_sync/edutube_mirror.db"
# Upper bound on bytes held by the mirror. 0 means unbounded.
quota_bytes = 0

[logging]
log_level = "INFO"
log_filename = "~/.local/share/edutube_sync/Logs/edutube_sync.log"
metrics_log_filename = "~/.local/share/edutube_sync/Logs/edutube_sync_metrics.json"
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}.")
    DEFAULT_CONFIG_FROM_TOML = {}


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    api_section = config.setdefault("api", {})
    base_url = os.environ.get(ENV_API_BASE_URL)
    if base_url:
        api_section["base_url"] = base_url
        logger.debug(f"api.base_url taken from {ENV_API_BASE_URL}")
    token = os.environ.get(ENV_API_TOKEN)
    if token:
        api_section["token"] = token
        logger.debug(f"api.token taken from {ENV_API_TOKEN}")
    return config


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(force_reload: bool = False, config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Loads settings from ~/.config/edutube_sync/config.toml (or `config_path`).
    If the file doesn't exist, it's created with default values.
    Environment overrides are applied last.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload and config_path is None:
        return _CONFIG_CACHE

    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.debug(f"Loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = _apply_env_overrides(loaded_config)
    return _CONFIG_CACHE


def get_setting(section: str, key: str, default: Any = None, settings: Optional[Dict[str, Any]] = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = settings if settings is not None else load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


# --- Typed Getters ---
def get_api_timeout(settings: Optional[Dict[str, Any]] = None) -> Optional[float]:
    """Seconds, or None when no timeout is configured."""
    value = get_setting("api", "timeout", 0, settings)
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid api.timeout '{value}', running without a timeout.")
        return None
    return timeout if timeout > 0 else None


def get_quota_bytes(settings: Optional[Dict[str, Any]] = None) -> Optional[int]:
    value = get_setting("storage", "quota_bytes", 0, settings)
    try:
        quota = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid storage.quota_bytes '{value}', running without a quota.")
        return None
    return quota if quota > 0 else None


def get_poll_interval_ms(settings: Optional[Dict[str, Any]] = None) -> int:
    value = get_setting("sync", "poll_interval_ms", 5000, settings)
    try:
        interval = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid sync.poll_interval_ms '{value}', using 5000.")
        return 5000
    return interval if interval > 0 else 5000


def get_mirror_db_path(settings: Optional[Dict[str, Any]] = None) -> Path:
    default_path = str(BASE_DATA_DIR / "edutube_mirror.db")
    return Path(get_setting("storage", "mirror_db_path", default_path, settings)).expanduser().resolve()


def get_api_token(settings: Optional[Dict[str, Any]] = None) -> Optional[str]:
    return get_setting("api", "token", "", settings) or None

#
# End of config.py
#######################################################################################################################
