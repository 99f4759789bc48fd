"""Layered settings for pollnotify.

Values are looked up by dotted key (``neynar.api_key``) in this order:

1. Overrides installed with ``set_config_for_testing``.
2. Environment variables, named after the key in upper case with dots
   replaced by underscores (``NEYNAR_API_KEY``). A ``.env`` file found
   from the working directory only fills variables that are not set.
3. ``~/.pollnotify/config.yaml``, whose nested mappings become dotted keys.
4. The default given by the caller.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from pollnotify.core.services import notification_dispatcher as dispatcher_defaults
from pollnotify.infrastructure.farcaster import neynar_client as neynar_defaults
from pollnotify.infrastructure.queue.disk_queue import DEFAULT_QUEUE_DIR
from pollnotify.infrastructure.resilience import api_retry as executor_defaults
from pollnotify.infrastructure.resilience.rate_gate import DEFAULT_CAPACITY

logger = logging.getLogger(__name__)

HOME_DIR = Path.home() / ".pollnotify"
DEFAULT_SETTINGS_FILE = HOME_DIR / "config.yaml"

_file_values: Dict[str, Any] = {}
_overrides: Dict[str, Any] = {}
_is_loaded = False


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Returns the flattened mapping stored in ``path``, or {} if unusable."""
    if not path.exists():
        logger.debug(f"No settings file at {path}")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Ignoring settings file {path}: {e}")
        return {}
    if content is None:
        return {}
    if not isinstance(content, dict):
        logger.warning(f"Ignoring settings file {path}: top level is not a mapping")
        return {}
    logger.info(f"Settings read from {path}")
    return _flatten(content)


def load_configuration(config_file: Path = DEFAULT_SETTINGS_FILE, env_file: Optional[Path] = None) -> None:
    """Reads the settings file and the ``.env`` file once per process.

    Args:
        config_file: YAML settings file.
        env_file: ``.env`` file. When None it is searched upwards from the
            working directory.
    """
    global _file_values, _is_loaded
    if _is_loaded:
        return

    _file_values = _read_yaml(config_file)

    dotenv_path = str(env_file) if env_file else find_dotenv(usecwd=True)
    if dotenv_path and load_dotenv(dotenv_path=dotenv_path, override=False):
        logger.info(f"Environment completed from {dotenv_path}")

    _is_loaded = True


def reset_configuration() -> None:
    """Forgets loaded values so the next load_configuration() reads again."""
    global _file_values, _is_loaded
    _file_values = {}
    _is_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def env_name(key: str) -> str:
    return key.upper().replace(".", "_")


def get_config(key: str, default: Any = None) -> Any:
    """Returns the value of a dotted settings key.

    Environment values are returned as text; the typed getters below
    convert them.

    Args:
        key: Dotted key such as ``dispatcher.pool_size``.
        default: Returned when no source defines the key.
    """
    if key in _overrides:
        return _overrides[key]
    raw = os.environ.get(env_name(key))
    if raw is not None:
        return raw
    return _file_values.get(key, default)


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Installs values that win over every other source."""
    _overrides.update(config_dict)


def clear_test_config() -> None:
    _overrides.clear()


# --- Convenience Functions ---

def get_neynar_api_key() -> Optional[str]:
    key = get_config("neynar.api_key")
    return str(key) if key else None


def get_bot_fid() -> int:
    return int(get_config("bot.fid", 0) or 0)


def get_bot_signer_uuid() -> Optional[str]:
    signer = get_config("bot.signer_uuid")
    return str(signer) if signer else None


def get_queue_dir() -> Path:
    return Path(str(get_config("queue.dir", DEFAULT_QUEUE_DIR))).expanduser()


@dataclass(frozen=True)
class ExecutorOptions:
    api_endpoint: str
    hub_endpoint: str
    max_concurrent_requests: int
    max_retries: int
    base_delay_s: float
    max_jitter_s: float
    timeout_s: float


@dataclass(frozen=True)
class DispatcherOptions:
    interval_s: float
    batch_size: int
    pool_size: int
    send_cooldown_s: float


def get_executor_options() -> ExecutorOptions:
    return ExecutorOptions(
        api_endpoint=str(get_config("neynar.api_endpoint", neynar_defaults.DEFAULT_API_ENDPOINT)),
        hub_endpoint=str(get_config("neynar.hub_endpoint", neynar_defaults.DEFAULT_HUB_ENDPOINT)),
        max_concurrent_requests=int(get_config("neynar.max_concurrent_requests", DEFAULT_CAPACITY)),
        max_retries=int(get_config("neynar.max_retries", executor_defaults.DEFAULT_MAX_RETRIES)),
        base_delay_s=float(get_config("neynar.base_delay_s", executor_defaults.DEFAULT_BASE_DELAY_S)),
        max_jitter_s=float(get_config("neynar.max_jitter_s", executor_defaults.DEFAULT_MAX_JITTER_S)),
        timeout_s=float(get_config("neynar.timeout_s", executor_defaults.DEFAULT_TIMEOUT_S)),
    )


def get_dispatcher_options() -> DispatcherOptions:
    return DispatcherOptions(
        interval_s=float(get_config("dispatcher.interval_s", dispatcher_defaults.DEFAULT_INTERVAL_S)),
        batch_size=int(get_config("dispatcher.batch_size", dispatcher_defaults.DEFAULT_BATCH_SIZE)),
        pool_size=int(get_config("dispatcher.pool_size", dispatcher_defaults.DEFAULT_POOL_SIZE)),
        send_cooldown_s=float(get_config("dispatcher.send_cooldown_s", dispatcher_defaults.DEFAULT_SEND_COOLDOWN_S)),
    )
