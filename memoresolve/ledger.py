"""
Pending-clarification ledger.

Responsibilities:
- Persist at most one pending clarification per user.
- Enforce the time-to-live: an expired record is never returned.
- Survive process restarts (SQLite via SQLAlchemy).

Non-Responsibilities:
- No resolution decisions.
- No interpretation of the human's reply.

Invariant:
The user id is the primary key, so a second put() for the same user
replaces the first.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .database import PendingClarificationRecord, make_session_factory
from .logger import get_logger
from .models import PendingClarification

logger = get_logger()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _to_aware_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class ClarificationLedger:
    """Keyed store of PendingClarification records with a TTL."""

    def __init__(
        self,
        db_path: Path,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_path = db_path
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._sessions = make_session_factory(db_path)

    def _now(self) -> datetime:
        return _to_naive_utc(self._clock())

    def get(self, user_id: str) -> Optional[PendingClarification]:
        """
        Return the live pending clarification for a user.

        An expired record is deleted on the way out and None is returned.
        """
        session = self._sessions()
        try:
            record = session.query(PendingClarificationRecord).filter_by(user_id=user_id).first()
            if record is None:
                return None

            if record.expires_at <= self._now():
                session.delete(record)
                session.commit()
                logger.info(
                    "Pending clarification expired",
                    user_id=user_id,
                    origin_step_id=record.origin_step_id,
                    expired_at=record.expires_at.isoformat(),
                )
                logger.record_clarification("expired")
                return None

            return PendingClarification.from_dict(
                record.payload,
                created_at=_to_aware_utc(record.created_at),
                expires_at=_to_aware_utc(record.expires_at),
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def put(self, user_id: str, pending: PendingClarification) -> PendingClarification:
        """Insert or replace the user's pending clarification with a fresh expiry."""
        now = self._now()
        pending.created_at = _to_aware_utc(now)
        pending.expires_at = _to_aware_utc(now + self.ttl)
        self._write(user_id, pending, created_at=now, expires_at=now + self.ttl)
        logger.debug(
            "Pending clarification stored",
            user_id=user_id,
            domain=pending.domain,
            origin_step_id=pending.origin_step_id,
            candidates=len(pending.candidates),
            attempts=pending.attempts,
        )
        return pending

    def rearm(self, user_id: str, pending: PendingClarification) -> PendingClarification:
        """
        Re-ask after an invalid reply.

        Candidates are kept as they were; the selection is cleared, the
        attempt counter bumped and the expiry refreshed.
        """
        pending.user_selection = None
        pending.resolved = False
        pending.attempts += 1
        created_at = _to_naive_utc(pending.created_at) if pending.created_at else self._now()
        expires_at = self._now() + self.ttl
        pending.expires_at = _to_aware_utc(expires_at)
        self._write(user_id, pending, created_at=created_at, expires_at=expires_at)
        logger.record_clarification("rearmed")
        return pending

    def clear(self, user_id: str) -> bool:
        """Delete the user's record. Returns True when something was removed."""
        session = self._sessions()
        try:
            removed = session.query(PendingClarificationRecord).filter_by(user_id=user_id).delete()
            session.commit()
            return removed > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def purge_expired(self) -> int:
        """Delete every expired record. Returns the number removed."""
        session = self._sessions()
        try:
            removed = (
                session.query(PendingClarificationRecord)
                .filter(PendingClarificationRecord.expires_at <= self._now())
                .delete()
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if removed:
            logger.info("Purged expired clarifications", removed=removed)
        return removed

    def count(self) -> int:
        session = self._sessions()
        try:
            return session.query(PendingClarificationRecord).count()
        finally:
            session.close()

    def _write(
        self,
        user_id: str,
        pending: PendingClarification,
        created_at: datetime,
        expires_at: datetime,
    ) -> None:
        session = self._sessions()
        try:
            record = session.get(PendingClarificationRecord, user_id)
            if record is None:
                record = PendingClarificationRecord(user_id=user_id)
                session.add(record)
            record.domain = pending.domain
            record.origin_step_id = pending.origin_step_id
            record.kind = pending.kind.value
            record.allow_multiple = pending.allow_multiple
            record.return_to = pending.return_to
            record.attempts = pending.attempts
            record.payload = pending.to_dict()
            record.created_at = created_at
            record.expires_at = expires_at
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
