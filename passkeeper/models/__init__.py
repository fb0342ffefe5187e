# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Python-side timestamp default (no server round trip after INSERT)."""
    return datetime.now(timezone.utc)
