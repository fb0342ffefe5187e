# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Application configuration.
Values are loaded from environment variables and the optional etc/app.conf
file.  Salts and derived keys are never part of the configuration; they live
in the secure store only.
"""

import secrets
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

# Project root is two levels up from this file  (passkeeper/core/config.py → root/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_DATA_DIR = _PROJECT_ROOT / "data"


class Settings(BaseSettings):
    # Local relational store – must use an async driver
    database_url: str = f"sqlite+aiosqlite:///{_DATA_DIR / 'passkeeper.db'}"

    # One file per secure-store key (user_salt_<id>), mode 0600
    secure_store_dir: str = str(_DATA_DIR / "secure")

    # Destination of export_to_file()
    export_dir: str = str(_PROJECT_ROOT / "exports")

    # JWT signing secret for the local API.  A fresh random value per process
    # when unset, which simply invalidates tokens on restart.
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    access_token_expire_minutes: int = 15

    # Lock-contention retry policy.  Worst case wait is
    # (retries + 1) * busy_timeout + base * (2^retries - 1):
    # 4 * 100 ms + 300 ms * 7 = 2.5 s with the defaults.
    db_max_retries: int = 3
    db_retry_base_delay_ms: int = 300
    # How long SQLite waits on a held lock before reporting it busy
    db_busy_timeout_ms: int = 100

    # Login hash format for new hashes.  Existing hashes of either format
    # are always verifiable.
    auth_hash_scheme: Literal["sha256", "pbkdf2_sha256"] = "sha256"

    model_config = {"env_file": str(_PROJECT_ROOT / "etc" / "app.conf"), "extra": "ignore"}


# Module-level singleton – import this everywhere: from passkeeper.core.config import settings
settings = Settings()
