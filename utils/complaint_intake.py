"""Complaint creation: rate limiting, reference issuance and the submission fingerprint."""
from datetime import datetime
from typing import Callable, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import ANONYMOUS_NAME, COMPLAINT_CATEGORIES, Complaint, generate_uuid
from utils import rate_limiter
from utils.email_service import notify_status_change
from utils.errors import DependencyError, DuplicateReferenceError, RateLimitError, ValidationError
from utils.reference import issue_reference

def _clean(value) -> Optional[str]:
    text = (str(value) if value is not None else "").strip()
    return text or None


def _submitter_fields(data: Dict, user=None) -> Dict:
    is_anonymous = bool(data.get("is_anonymous"))
    if is_anonymous:
        # Anonymous submissions keep no contact details.
        return {"name": ANONYMOUS_NAME, "email": None, "student_id": None, "is_anonymous": True}
    email = _clean(data.get("email")) or (user.email if user is not None else None)
    return {
        "name": _clean(data.get("name")) or (user.full_name if user is not None and user.full_name else ANONYMOUS_NAME),
        "email": email.lower() if email else None,
        "student_id": _clean(data.get("student_id")),
        "is_anonymous": False,
    }


def _is_reference_collision(exc: IntegrityError) -> bool:
    return "reference_number" in str(getattr(exc, "orig", exc)).lower()


def create_complaint(
    data: Dict,
    user=None,
    origin: Optional[str] = None,
    user_agent: Optional[str] = None,
    attachment_url: Optional[str] = None,
    now: Optional[datetime] = None,
    reference_generator: Optional[Callable[[], str]] = None,
    notify: bool = True,
) -> Complaint:
    """Persist a new complaint and its submission fingerprint in one transaction.

    ``user`` is the authenticated account, if any; ``origin`` is the client IP
    used by the daily rate limit. Raises ``ValidationError``, ``RateLimitError``
    or ``DependencyError``.
    """
    category = (_clean(data.get("category")) or "").lower()
    description = _clean(data.get("description"))
    if category not in COMPLAINT_CATEGORIES:
        raise ValidationError("Please choose a valid category.", details={"field": "category"})
    if not description:
        raise ValidationError("Please describe your complaint.", details={"field": "description"})

    moment = now or datetime.utcnow()
    rate_limiter.check(origin, moment)

    prefix = current_app.config.get("REFERENCE_PREFIX", "LDCU")
    max_attempts = max(1, int(current_app.config.get("REFERENCE_MAX_ATTEMPTS", 5)))
    submitter = _submitter_fields(data, user)

    for attempt in range(1, max_attempts + 1):
        try:
            reference_number = issue_reference(prefix, reference_generator)
        except DuplicateReferenceError as exc:
            current_app.logger.warning("Reference collision", extra={"attempt": attempt, **exc.details})
            continue

        complaint = Complaint(
            id=generate_uuid(),
            reference_number=reference_number,
            category=category,
            description=description,
            attachment_url=attachment_url,
            user_id=user.id if user is not None else None,
            status="submitted",
            created_at=moment,
            updated_at=moment,
            **submitter,
        )
        db.session.add(complaint)
        rate_limiter.record(complaint, origin, user_agent, now=moment)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if rate_limiter.is_rate_limit_violation(exc):
                current_app.logger.info("Submission rate limited at insert", extra={"origin": origin})
                raise RateLimitError(rate_limiter.RATE_LIMIT_MESSAGE, details={"retry": "tomorrow"}) from exc
            if not _is_reference_collision(exc):
                current_app.logger.exception("Complaint insert rejected by the database")
                raise DependencyError("Could not save the complaint. Please retry.") from exc
            current_app.logger.warning(
                "Reference collision at insert",
                extra={"attempt": attempt, "reference_number": reference_number},
            )
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Complaint insert failed")
            raise DependencyError("Could not save the complaint. Please retry.") from exc

        current_app.logger.info(
            "Complaint submitted",
            extra={
                "reference_number": reference_number,
                "category": category,
                "anonymous": submitter["is_anonymous"],
                "attempt": attempt,
            },
        )
        if notify:
            notify_status_change(complaint)
        return complaint

    current_app.logger.error("Reference issuance exhausted", extra={"attempts": max_attempts})
    raise DependencyError("Could not allocate a reference number. Please retry.")
