from __future__ import annotations

import os
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_DATA_DIR = "/data"
DEFAULT_ORIGINAL_SOURCE_DIR = "/app/src"
DEFAULT_DB_FILENAME = "fmdb.db"

# Crash safety
DEFAULT_MAX_CONSECUTIVE_CRASHES = 3
DEFAULT_CRASH_WINDOW_MS = 5 * 60 * 1000
CRASH_HISTORY_RETENTION_MS = 24 * 60 * 60 * 1000
CRASH_LOG_RETENTION_MS = 30 * 24 * 60 * 60 * 1000
CRASH_LOG_TAIL_LINES = 50
SAFE_MODE_EXIT_CODE = 2
DEFAULT_BACKUPS_TO_KEEP = 5

# Update modes
USER_UPDATE_MODES = ("basic", "relative", "full")
# Folders in the source dir replaced by "basic" and "relative" updates.
CORE_FOLDERS = (
    "framework",
    "settings",
    "panels",
    "misc",
    "config",
    "db",
    "migrations",
    "safety",
    "supervisor",
    "admin",
    "updater",
)
CORE_FILES = ("bot.py", "manager.py", "VERSION")

# Supervisor
LOG_BUFFER_MAX_LINES = 10_000
READY_LOG_MARKER = "Logged in as"
READY_WAIT_SECONDS = 5.0
SHUTDOWN_GRACE_SECONDS = 1.0
RESTART_DELAY_SECONDS = 2.0
DEFAULT_HEALTH_GRACE_SECONDS = 60

# Admin API
DEFAULT_ADMIN_HOST = "0.0.0.0"
DEFAULT_ADMIN_PORT = 3000
DEFAULT_LOG_LIMIT = 100

# Updater
DEFAULT_UPDATE_REPO = "fmdb/fmdb"
GITHUB_API_BASE = "https://api.github.com"

# Modules
STANDARD_MODULE_CATEGORIES = ("fun", "misc", "moderation", "system")
MANIFEST_FILENAMES = ("module.yml", "module.yaml", "module.json")
SETTINGS_FILENAMES = ("settings.yml", "settings.yaml")


def _env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def data_dir() -> Path:
    return Path(_env("FMDB_DATA_DIR", DEFAULT_DATA_DIR))


def source_dir() -> Path:
    return Path(_env("FMDB_SOURCE_DIR", str(REPO_ROOT)))


def original_source_dir() -> Path:
    return Path(_env("FMDB_ORIGINAL_SOURCE_DIR", DEFAULT_ORIGINAL_SOURCE_DIR))


def db_path() -> Path:
    return Path(_env("FMDB_DB_PATH", str(data_dir() / DEFAULT_DB_FILENAME)))


def admin_host() -> str:
    return _env("FMDB_ADMIN_HOST", DEFAULT_ADMIN_HOST)


def admin_port() -> int:
    try:
        return int(_env("FMDB_ADMIN_PORT", str(DEFAULT_ADMIN_PORT)))
    except ValueError:
        return DEFAULT_ADMIN_PORT


def update_repo() -> str:
    return _env("FMDB_UPDATE_REPO", DEFAULT_UPDATE_REPO)
