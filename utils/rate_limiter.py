"""One-submission-per-origin-per-day limiter backed by ``complaint_submissions``."""
import ipaddress
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, request

from extensions import db
from models import SubmissionFingerprint
from utils.errors import RateLimitError

UNIQUE_CONSTRAINT_NAME = "uq_submission_origin_day"
RATE_LIMIT_MESSAGE = "You have already submitted a complaint today. Please try again tomorrow."


def _valid_ip(value: Optional[str]) -> Optional[str]:
    candidate = (value or "").strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def resolve_origin() -> Optional[str]:
    """Client IP for the current request, or ``None`` when it cannot be determined.

    ``X-Forwarded-For`` is honoured only behind a trusted proxy; its first hop is the client.
    """
    if current_app.config.get("TRUST_FORWARDED_FOR"):
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = _valid_ip(forwarded.split(",")[0]) if forwarded else None
        if first_hop:
            return first_hop
    return _valid_ip(request.remote_addr)


def day_bucket(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    """Calendar date of ``now`` in the configured timezone; naive datetimes are UTC."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    zone = ZoneInfo(tz_name or current_app.config.get("RATE_LIMIT_TIMEZONE", "Asia/Manila"))
    return moment.astimezone(zone).date()


def has_submitted(origin: Optional[str], now: Optional[datetime] = None) -> bool:
    if not origin:
        return False
    bucket = day_bucket(now)
    return (
        db.session.query(SubmissionFingerprint.id)
        .filter_by(ip_address=origin, day_bucket=bucket)
        .first()
        is not None
    )


def check(origin: Optional[str], now: Optional[datetime] = None) -> None:
    """Raise ``RateLimitError`` if ``origin`` already submitted today.

    An unresolvable origin fails open; the unique (origin, day) constraint
    still guards the insert.
    """
    if not current_app.config.get("RATE_LIMIT_ENABLED", True):
        return
    if not origin:
        current_app.logger.warning("Rate limiter could not resolve origin; allowing submission")
        return
    if has_submitted(origin, now):
        current_app.logger.info("Submission rate limited", extra={"origin": origin})
        raise RateLimitError(RATE_LIMIT_MESSAGE, details={"retry": "tomorrow"})


def record(complaint, origin: Optional[str], user_agent: Optional[str], now: Optional[datetime] = None) -> Optional[SubmissionFingerprint]:
    """Stage a fingerprint in the caller's transaction; nothing is committed here."""
    if not origin:
        return None
    # With enforcement off, later same-day submissions keep only the first fingerprint.
    if not current_app.config.get("RATE_LIMIT_ENABLED", True):
        with db.session.no_autoflush:
            if has_submitted(origin, now):
                return None
    moment = now or datetime.utcnow()
    fingerprint = SubmissionFingerprint(
        complaint=complaint,
        ip_address=origin,
        user_agent=(user_agent or "unknown")[:255],
        day_bucket=day_bucket(moment),
        created_at=moment.astimezone(timezone.utc).replace(tzinfo=None) if moment.tzinfo else moment,
    )
    db.session.add(fingerprint)
    return fingerprint


def is_rate_limit_violation(exc: Exception) -> bool:
    """True when an IntegrityError came from the (origin, day) unique constraint."""
    message = str(getattr(exc, "orig", exc)).lower()
    return UNIQUE_CONSTRAINT_NAME in message or (
        "complaint_submissions" in message and "ip_address" in message
    )
