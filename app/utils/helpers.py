"""Shared utility functions used by services and blueprints.

parse_date:         lenient date parsing (returns None on bad input)
utcnow / as_utc:    timezone-aware timestamps, including values read back
                    from SQLite without tzinfo
commit_or_conflict: commit, mapping IntegrityError to ConflictError
log_and_continue:   run a best-effort side effect, log failures, keep going
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError
from app.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (Brazilian format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO datetime string to an aware datetime (naive input is UTC).

    Returns None for empty input.

    Raises:
        ValueError: the value is not an ISO datetime.
    """
    if value in (None, ""):
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_conflict(resource: str, field: str, value=None):
    """Commit the current session; a unique-constraint violation becomes ConflictError.

    Usage::

        db.session.add(org)
        commit_or_conflict("Organization", "cnpj", org.cnpj)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s.%s): %s", resource, field, exc.orig)
        raise ConflictError(resource, field, value) from exc


# ── Best-effort side effects ─────────────────────────────────────────────────

def log_and_continue(label: str, fn, *args, default=None, rollback: bool = False, **kwargs):
    """Call ``fn(*args, **kwargs)``; on failure log the traceback and return ``default``.

    For side effects (email, notifications, storage cleanup, checklist
    re-sync) whose failure must not undo state the caller already committed.
    Pass ``rollback=True`` when ``fn`` writes to the session, so a failed
    write does not poison the rest of the request.
    """
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.exception("%s failed; continuing", label)
        if rollback:
            db.session.rollback()
        return default
