"""Complaint lifecycle state machine.

Every status change goes through ``apply_transition``: the transition table
decides which role may move a complaint from which status, the preconditions
are checked before anything is written, and the status, its side-effect fields
and one audit entry are committed together behind a status-match guard.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import DEPARTMENTS, Complaint
from utils.actor import SUBMITTER_ROLE, SYSTEM_ROLE, Actor
from utils.audit_trail import record_entry
from utils.email_service import notify_status_change
from utils.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    DependencyError,
    InvalidTransitionError,
    ValidationError,
)


@dataclass(frozen=True)
class Transition:
    action: str
    source: str
    target: str
    roles: Tuple[str, ...]
    audit_label: str


TRANSITIONS: Dict[str, Transition] = {
    t.action: t
    for t in (
        Transition("verify", "submitted", "verified", ("admin", "super_admin"), "Complaint Verified"),
        Transition("reject", "submitted", "rejected", ("admin", "super_admin"), "Complaint Rejected"),
        Transition("start", "verified", "in_progress", ("department",), "Started Processing"),
        Transition("resolve", "in_progress", "resolved", ("department",), "Complaint Resolved"),
        Transition("confirm", "resolved", "closed", (SUBMITTER_ROLE,), "Resolution Confirmed by User"),
        Transition("dispute", "resolved", "disputed", (SUBMITTER_ROLE,), "Resolution Disputed by User"),
        Transition("expire", "resolved", "closed", (SYSTEM_ROLE,), "Complaint Auto-Closed"),
    )
}

SELF_SERVICE_ACTIONS = ("confirm", "dispute")


def _window_days() -> int:
    return int(current_app.config.get("VERIFICATION_WINDOW_DAYS", 7))


def remaining_window_days(complaint: Complaint, now: Optional[datetime] = None, window_days: Optional[int] = None) -> int:
    """Whole days left to confirm or dispute; 0 once lapsed or when never resolved."""
    if complaint.resolved_at is None:
        return 0
    days = _window_days() if window_days is None else window_days
    deadline = complaint.resolved_at + timedelta(days=days)
    remaining = (deadline - (now or datetime.utcnow())) / timedelta(days=1)
    return max(0, math.ceil(remaining))


def _clean(fields: Dict, key: str) -> Optional[str]:
    value = fields.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _authorize(transition: Transition, complaint: Complaint, actor: Actor) -> None:
    if actor.role not in transition.roles:
        raise AuthorizationError(
            f"Role '{actor.role}' may not {transition.action} a complaint.",
            details={"action": transition.action},
        )
    if actor.role == "department" and complaint.assigned_department != actor.department:
        raise AuthorizationError(
            "This complaint is not assigned to your department.",
            details={"action": transition.action},
        )


def _window_allows(transition: Transition, complaint: Complaint, now: datetime) -> bool:
    remaining = remaining_window_days(complaint, now)
    if transition.action in SELF_SERVICE_ACTIONS:
        return remaining > 0
    if transition.action == "expire":
        return remaining == 0
    return True


def available_actions(complaint: Complaint, actor: Actor, now: Optional[datetime] = None) -> List[str]:
    """Actions ``actor`` may attempt on ``complaint`` right now, in table order."""
    moment = now or datetime.utcnow()
    offered = []
    for transition in TRANSITIONS.values():
        if transition.source != complaint.status:
            continue
        try:
            _authorize(transition, complaint, actor)
        except AuthorizationError:
            continue
        if _window_allows(transition, complaint, moment):
            offered.append(transition.action)
    return offered


def validate_fields(transition: Transition, fields: Dict, uploaded: Tuple[str, ...] = ()) -> None:
    """Reject missing or invalid submitted fields before anything is stored.

    ``uploaded`` names fields that a pending upload will fill once these checks pass.
    """
    action = transition.action
    if action == "verify" and _clean(fields, "department") not in DEPARTMENTS:
        raise ValidationError("A valid department is required.", details={"field": "department"})
    if action == "reject" and not _clean(fields, "remarks"):
        raise ValidationError("A reason is required to reject a complaint.", details={"field": "remarks"})
    if action == "resolve":
        if not _clean(fields, "resolution_details"):
            raise ValidationError("Resolution details are required.", details={"field": "resolution_details"})
        if not _clean(fields, "resolution_image_url") and "resolution_image_url" not in uploaded:
            raise ValidationError("A resolution proof image is required.", details={"field": "resolution_image"})
    if action == "dispute" and not _clean(fields, "reason"):
        raise ValidationError("Please explain why the resolution is not satisfactory.", details={"field": "reason"})


def _build_writes(transition: Transition, complaint: Complaint, actor: Actor, fields: Dict, now: datetime) -> Tuple[Dict, str]:
    """Return the column values and the audit detail for one transition."""
    validate_fields(transition, fields)
    action = transition.action
    remarks = _clean(fields, "remarks")

    if action == "verify":
        department = _clean(fields, "department")
        details = f"Assigned to {DEPARTMENTS[department]}."
        if remarks:
            details += f" Remarks: {remarks}"
        return {
            "assigned_department": department,
            "admin_remarks": remarks,
            "verified_by": actor.id,
            "verified_at": now,
        }, details

    if action == "reject":
        return {"admin_remarks": remarks, "verified_by": actor.id, "verified_at": now}, f"Reason: {remarks}"

    if action == "start":
        writes = {"started_by": actor.id, "started_at": now}
        if remarks:
            writes["department_remarks"] = remarks
        return writes, f"Remarks: {remarks}" if remarks else "Department started working on the complaint"

    if action == "resolve":
        resolution = _clean(fields, "resolution_details")
        writes = {
            "resolution_details": resolution,
            "resolution_image_url": _clean(fields, "resolution_image_url"),
            "resolved_by": actor.id,
            "resolved_at": now,
        }
        if remarks:
            writes["department_remarks"] = remarks
        return writes, f"Resolution: {resolution}"

    if action == "confirm":
        return (
            {"closed_at": now, "user_verified": True},
            "The complainant confirmed that the issue was resolved satisfactorily.",
        )

    if action == "dispute":
        reason = _clean(fields, "reason")
        return {"dispute_reason": reason, "disputed_at": now}, f"Reason: {reason}"

    # expire
    return (
        {"closed_at": now},
        f"Verification window of {_window_days()} day(s) lapsed without a response from the complainant.",
    )


def check_transition(complaint: Complaint, action: str, actor: Actor, now: Optional[datetime] = None) -> Transition:
    """Run every check that does not depend on submitted fields; returns the matched edge."""
    transition = TRANSITIONS.get((action or "").strip().lower())
    if transition is None:
        raise ValidationError(f"Unknown action '{action}'.", details={"field": "action"})

    _authorize(transition, complaint, actor)
    if complaint.status != transition.source:
        raise InvalidTransitionError(
            f"Cannot {transition.action} a complaint that is {complaint.status}.",
            details={"action": transition.action, "status": complaint.status},
        )
    if not _window_allows(transition, complaint, now or datetime.utcnow()):
        if transition.action == "expire":
            raise ValidationError("The verification window is still open.", details={"action": transition.action})
        raise ValidationError(
            "The verification window has lapsed; the complaint will be closed automatically.",
            details={"action": transition.action},
        )
    return transition


def apply_transition(
    complaint: Complaint,
    action: str,
    actor: Actor,
    fields: Optional[Dict] = None,
    now: Optional[datetime] = None,
    notify: bool = True,
) -> Complaint:
    """Authorize, validate and commit one lifecycle transition.

    Raises ``ValidationError``, ``AuthorizationError``, ``InvalidTransitionError``
    or ``ConcurrentModificationError``; nothing is written when any of them is raised.
    """
    moment = now or datetime.utcnow()
    transition = check_transition(complaint, action, actor, moment)
    writes, details = _build_writes(transition, complaint, actor, fields or {}, moment)
    writes.update({"status": transition.target, "updated_at": moment})

    complaint_id = complaint.id
    reference_number = complaint.reference_number
    try:
        result = db.session.execute(
            update(Complaint)
            .where(Complaint.id == complaint_id, Complaint.status == transition.source)
            .values(**writes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            current_app.logger.info(
                "Transition lost a concurrent update",
                extra={"reference_number": reference_number, "transition": transition.action},
            )
            raise ConcurrentModificationError(details={"action": transition.action})
        record_entry(complaint, transition.audit_label, actor, details, now=moment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Transition write failed",
            extra={"reference_number": reference_number, "transition": transition.action},
        )
        raise DependencyError("Could not save the complaint update. Please retry.") from exc

    db.session.refresh(complaint)
    current_app.logger.info(
        "Complaint transition applied",
        extra={
            "reference_number": reference_number,
            "transition": transition.action,
            "from_status": transition.source,
            "to_status": transition.target,
            "actor_role": actor.role,
        },
    )

    if notify:
        notify_status_change(complaint)
    return complaint


def close_if_lapsed(complaint: Complaint, now: Optional[datetime] = None) -> bool:
    """Auto-close a resolved complaint whose window has lapsed; True when it closed here."""
    moment = now or datetime.utcnow()
    if complaint.status != "resolved" or remaining_window_days(complaint, moment) > 0:
        return False
    try:
        apply_transition(complaint, "expire", Actor.system(), now=moment, notify=False)
    except ConcurrentModificationError:
        db.session.refresh(complaint)
        return False
    return True
