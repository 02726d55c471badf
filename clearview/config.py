"""
Settings for the ClearView classifier client.

Defaults live on the dataclasses below.  ``config/config.yaml`` overrides
them per section, and ``CLEARVIEW_<SECTION>_<KEY>`` environment variables
(optionally from ``.env``) override the YAML.
"""

import logging
import os
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = _ROOT / "config" / "config.yaml"
DEFAULT_ENV_PATH = _ROOT / ".env"

ENV_PREFIX = "CLEARVIEW_"


@dataclass
class TransportSettings:
    endpoint: str = "http://localhost:3000/classify"
    timeout_ms: int = 10000
    retry_attempts: int = 3
    retry_backoff_base_ms: int = 2000
    api_key: str = ""


@dataclass
class BatchingSettings:
    batch_size: int = 25
    max_wait_ms: int = 5000
    redrain_delay_ms: int = 100


@dataclass
class CacheSettings:
    enabled: bool = True
    ttl_seconds: int = 3600
    max_entries: int = 1000


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Every configurable knob, grouped by the component that reads it."""
    transport: TransportSettings = field(default_factory=TransportSettings)
    batching: BatchingSettings = field(default_factory=BatchingSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Parse *path* as a YAML mapping; missing or non-mapping files give ``{}``."""
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return data if isinstance(data, dict) else {}


def _apply_dict(target: object, data: Dict[str, Any]) -> None:
    """Copy known keys from *data* onto a section."""
    for key, value in data.items():
        if hasattr(target, key):
            setattr(target, key, value)
        else:
            logger.debug("Ignoring unknown config key: %s", key)


def _parse_env(raw: str, kind: Any) -> Any:
    if kind is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if kind in (int, float):
        return kind(raw)
    return raw


def _apply_env_overrides(settings: Settings) -> None:
    """Apply ``CLEARVIEW_<SECTION>_<KEY>`` variables, e.g. ``CLEARVIEW_CACHE_ENABLED``."""
    for section_field in fields(settings):
        section = getattr(settings, section_field.name)
        for option in fields(section):
            name = f"{ENV_PREFIX}{section_field.name}_{option.name}".upper()
            raw = os.environ.get(name)
            if raw is None:
                continue
            try:
                setattr(section, option.name, _parse_env(raw, option.type))
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", name, raw)


def _build_settings(config_path: Path, env_path: Path) -> Settings:
    load_dotenv(env_path, override=True)
    raw = _load_yaml(config_path)

    settings = Settings()
    for section_field in fields(settings):
        values = raw.get(section_field.name)
        if isinstance(values, dict):
            _apply_dict(getattr(settings, section_field.name), values)
        elif values is not None:
            logger.warning("Config section %r is not a mapping", section_field.name)

    _apply_env_overrides(settings)
    logger.info("Settings loaded from %s", config_path)
    return settings


_settings: Optional[Settings] = None
_lock = threading.Lock()


def get_settings(
    *,
    yaml_path: Optional[Path] = None,
    env_path: Optional[Path] = None,
    _force_reload: bool = False,
) -> Settings:
    """Return the shared :class:`Settings`, loading them on first use.

    Values come from the defaults above, then the YAML file, then
    ``CLEARVIEW_*`` environment variables (``.env`` is loaded into the
    environment first).  *yaml_path* and *env_path* replace the default
    file locations; ``_force_reload`` discards any previously loaded copy.
    """
    global _settings

    with _lock:
        if _settings is None or _force_reload:
            _settings = _build_settings(
                yaml_path or DEFAULT_CONFIG_PATH, env_path or DEFAULT_ENV_PATH
            )
        return _settings


def reset_settings() -> None:
    """Forget the loaded settings so the next call reloads them."""
    global _settings
    with _lock:
        _settings = None
