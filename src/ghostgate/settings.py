"""Static configuration for ghostgate.

Paths, logging and CLI behaviour live in a single optional JSON file. The
privacy policy itself is not configured here: it is persisted separately and
only changed through the PolicyStore.
"""

import json
import os

# The working directory is the project root unless GHOSTGATE_HOME says
# otherwise, so a checkout and an installed package behave the same.
PROJECT_ROOT = os.path.abspath(os.getenv("GHOSTGATE_HOME", os.getcwd()))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json; a missing file means all defaults."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Storage locations:
# - DB_PATH: SQLite file holding the message mirror and shadow history
# - POLICY_PATH: JSON file holding the privacy policy
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "ghostgate.db"))
POLICY_PATH = _resolve_path(_storage.get("policy_path", "policy.json"))

# How often a running watcher re-reads the policy file, so changes made with
# `ghostgate settings` from another shell take effect without a restart.
_policy = _CONFIG.get("policy", {})
POLICY_REFRESH_SECONDS = float(_policy.get("refresh_seconds", 30))

# How often the CLI checks the deferred-send queue while waiting to exit.
_scheduler = _CONFIG.get("scheduler", {})
SCHEDULER_POLL_SECONDS = float(_scheduler.get("poll_seconds", 0.5))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
