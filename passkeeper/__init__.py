# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""PassKeeper – offline-first credential vault with portable encrypted backups."""

__version__ = "1.0.0"
