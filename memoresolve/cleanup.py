"""
Cleanup module for removing expired pending clarifications.

A clarification nobody answered within its time-to-live is dead weight:
the ledger already refuses to return it, and this sweep deletes it so the
table does not accumulate abandoned questions.
"""

from pathlib import Path
from typing import Tuple

from .ledger import ClarificationLedger
from .logger import get_logger

logger = get_logger()


def cleanup_expired_clarifications(db_path: Path, ttl_seconds: int = 300) -> Tuple[int, int]:
    """
    Remove pending clarifications whose expiry has passed.

    Args:
        db_path: Path to the SQLite ledger
        ttl_seconds: TTL the ledger is opened with (expiry is stored per record)

    Returns:
        Tuple of (records_before, records_after)
        Difference = records_removed
    """
    ledger = ClarificationLedger(db_path, ttl_seconds=ttl_seconds)
    before = ledger.count()
    removed = ledger.purge_expired()
    after = ledger.count()

    logger.info(
        f"Cleanup complete: {removed} removed, {after} remaining",
        records_before=before,
        records_removed=removed,
        records_after=after,
        db_path=str(db_path),
    )
    return (before, after)
