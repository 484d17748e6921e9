# src/shikigami/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing touches the database at import time.
- Stores never read settings themselves; bootstrap passes values in.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SHIKI"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_log_level(name: str, default: str) -> int:
    raw = _env(name, default).strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- Local data paths ----
    data_dir: Path
    db_path: Path
    log_dir: Path

    # ---- Logging ----
    log_level: int

    # ---- Store behaviour ----
    default_actor: str
    sqlite_timeout: float
    tree_max_depth: int

    # ---- Edge validation policy ----
    allow_self_edges: bool
    allow_dangling_edges: bool

    @staticmethod
    def from_env() -> "Settings":
        data_dir = _env_path(_k("DATA_DIR"), Path(".shiki"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "shiki.db")
        log_dir = _env_path(_k("LOG_DIR"), data_dir / "logs")

        log_level = _env_log_level(_k("LOG_LEVEL"), "INFO")

        default_actor = _env(_k("DEFAULT_ACTOR"), "unknown").strip() or "unknown"
        sqlite_timeout = max(0.0, _env_float(_k("SQLITE_TIMEOUT"), 30.0))
        tree_max_depth = max(0, _env_int(_k("TREE_MAX_DEPTH"), 10))

        allow_self_edges = _env_bool(_k("ALLOW_SELF_EDGES"), True)
        allow_dangling_edges = _env_bool(_k("ALLOW_DANGLING_EDGES"), True)

        return Settings(
            data_dir=data_dir,
            db_path=db_path,
            log_dir=log_dir,
            log_level=log_level,
            default_actor=default_actor,
            sqlite_timeout=sqlite_timeout,
            tree_max_depth=tree_max_depth,
            allow_self_edges=allow_self_edges,
            allow_dangling_edges=allow_dangling_edges,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
