from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "AUTOPARTS_DATA_DIR"
ENV_CURRENCY = "AUTOPARTS_CURRENCY"
ENV_LOG_LEVEL = "AUTOPARTS_LOG_LEVEL"
SESSION_DATA_DIR = "autoparts_data_dir"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    currency: str = "USD"
    log_level: str = "INFO"
    busy_timeout_ms: int = 5000


def _default_data_dir() -> Path:
    return Path.home() / ".autoparts_inventory"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", cfg, e)
            return {}
    return {}


def persist_data_dir(data_dir_str: str, *, config_dir: Optional[Path] = None) -> Path:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    # settings.json lives in the default folder so it can point elsewhere
    config_dir = config_dir or _default_data_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    cfg = config_dir / CONFIG_FILE_NAME
    payload = _load_persisted_settings(config_dir)
    payload["data_dir"] = str(data_dir)
    cfg.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return data_dir


def build_settings(
    session_data_dir: Optional[str] = None,
    *,
    environ: Optional[dict] = None,
    default_dir: Optional[Path] = None,
) -> Settings:
    # Priority order:
    # 1) Session state (set via Data Management page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    env = os.environ if environ is None else environ
    default_dir = default_dir or _default_data_dir()
    persisted = _load_persisted_settings(default_dir)

    if session_data_dir:
        data_dir = Path(session_data_dir)
    elif env.get(ENV_DATA_DIR):
        data_dir = Path(env[ENV_DATA_DIR])
    else:
        data_dir = Path(persisted.get("data_dir", default_dir))

    data_dir = data_dir.expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    currency = env.get(ENV_CURRENCY) or persisted.get("currency") or "USD"
    log_level = (env.get(ENV_LOG_LEVEL) or persisted.get("log_level") or "INFO").upper()
    busy_timeout_ms = int(persisted.get("busy_timeout_ms", 5000))

    return Settings(
        data_dir=data_dir,
        db_path=data_dir / "inventory.db",
        currency=str(currency).upper(),
        log_level=log_level,
        busy_timeout_ms=busy_timeout_ms,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


@st.cache_resource
def get_settings() -> Settings:
    settings = build_settings(st.session_state.get(SESSION_DATA_DIR))
    configure_logging(settings.log_level)
    return settings
