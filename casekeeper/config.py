"""Configuration: environment variables, provider settings, logging paths."""

import os
from pathlib import Path


def env(name: str, default: str = "") -> str:
    v = os.getenv(name, default)
    return v.strip() if isinstance(v, str) else v


def _int(name: str, default: int) -> int:
    try:
        return int(env(name, str(default)))
    except ValueError:
        return default


def _float(name: str, default: float) -> float:
    try:
        return float(env(name, str(default)))
    except ValueError:
        return default


# Values are read on every call so tests and the CLI can change the
# environment after import.

def db_path() -> Path:
    return Path(env("CASEKEEPER_DB_PATH", "data/casekeeper.db"))


def log_level() -> str:
    return env("CASEKEEPER_LOG_LEVEL", "INFO").upper() or "INFO"


def log_dir() -> Path:
    return Path(env("CASEKEEPER_LOG_DIR", "logs"))


def log_to_file() -> bool:
    return env("CASEKEEPER_LOG_TO_FILE", "1").lower() not in ("0", "false", "no")


def provider_mode() -> str:
    return env("CASEKEEPER_PROVIDER", "local").lower() or "local"


def provider_url() -> str:
    return env("CASEKEEPER_PROVIDER_URL").rstrip("/")


def provider_timeout() -> float:
    return max(1.0, _float("CASEKEEPER_PROVIDER_TIMEOUT", 20.0))


def provider_retries() -> int:
    return max(0, _int("CASEKEEPER_PROVIDER_RETRIES", 2))


def validate_config() -> None:
    mode = provider_mode()
    if mode not in ("local", "remote"):
        raise RuntimeError(f"CASEKEEPER_PROVIDER must be 'local' or 'remote', got {mode!r}")
    if mode == "remote" and not provider_url():
        raise RuntimeError(
            "Missing required env vars: CASEKEEPER_PROVIDER_URL\n"
            "Hint: set it in .env or switch CASEKEEPER_PROVIDER back to 'local'."
        )
