from __future__ import annotations
import os
from datetime import date, datetime
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

ANCHOR_ENV_VAR = "CHURCH_CORE_ANCHOR_DATE"  # YYYY-MM-DD, pins "today" for seeds and demos
LOG_LEVEL_ENV_VAR = "CHURCH_CORE_LOG_LEVEL"
TRAINING_MODULES_ENV_VAR = "CHURCH_CORE_TRAINING_MODULES"  # comma separated
DEV_SEED_ENV_VAR = "CHURCH_CORE_DEV_SEED"  # "0" disables the in-memory demo congregation
AVATAR_DIR_ENV_VAR = "CHURCH_CORE_AVATAR_DIR"
AVATAR_BASE_URL_ENV_VAR = "CHURCH_CORE_AVATAR_BASE_URL"

DEFAULT_TRAINING_MODULES = ("EGPR", "T4T")


def database_url() -> Optional[str]:
    return os.getenv("DATABASE_URL") or os.getenv("DATABASE_URL_DEV")


def anchor_date() -> Optional[date]:
    val = os.getenv(ANCHOR_ENV_VAR)
    if not val:
        return None
    return datetime.strptime(val, "%Y-%m-%d").date()


def log_level() -> str:
    return os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()


def training_modules() -> tuple[str, ...]:
    raw = os.getenv(TRAINING_MODULES_ENV_VAR)
    if not raw:
        return DEFAULT_TRAINING_MODULES
    modules = tuple(m.strip() for m in raw.split(",") if m.strip())
    return modules or DEFAULT_TRAINING_MODULES


def dev_seed_enabled() -> bool:
    return os.getenv(DEV_SEED_ENV_VAR, "1").strip().lower() not in ("0", "false", "no")


def avatar_dir() -> str:
    return os.getenv(AVATAR_DIR_ENV_VAR, "var/blobs")


def avatar_base_url() -> str:
    return os.getenv(AVATAR_BASE_URL_ENV_VAR, "/blobs").rstrip("/")
