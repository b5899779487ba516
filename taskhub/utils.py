from datetime import datetime, timezone
import re

# Deliberately loose: something@something.tld
EMAIL_RE = re.compile(r'.+@.+\..+')


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_dt(dt: datetime | None) -> str | None:
    dt = as_utc(dt)
    if not dt:
        return None
    return dt.isoformat()


def normalize_email(email: str | None) -> str:
    return (email or '').strip().lower()


def clean_text(value) -> str | None:
    """Strip a submitted string field; None stays None."""
    if value is None:
        return None
    return str(value).strip()
