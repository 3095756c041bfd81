"""Role scoping shared by every complaint listing and lookup."""
from typing import Dict, Optional

from sqlalchemy import func, or_

from extensions import db
from models import COMPLAINT_STATUSES, Complaint
from utils.actor import Actor
from utils.errors import AuthorizationError, NotFoundError, ValidationError
from utils.reference import normalize_reference


def scoped_query(actor: Actor):
    """Complaints ``actor`` may see.

    Admins see everything, a department sees its assigned complaints once
    they leave ``submitted``, a student sees only complaints tied to the account.
    """
    if actor.role in ("admin", "super_admin"):
        return Complaint.query
    if actor.role == "department":
        return Complaint.query.filter(
            Complaint.assigned_department == actor.department,
            Complaint.status != "submitted",
        )
    if actor.role == "student" and actor.id:
        return Complaint.query.filter(Complaint.user_id == actor.id)
    raise AuthorizationError("Complaint listings require a signed-in account.")


def filtered_query(actor: Actor, status: Optional[str] = None, q: Optional[str] = None):
    query = scoped_query(actor)
    status = (status or "").strip().lower()
    if status and status != "all":
        if status not in COMPLAINT_STATUSES:
            raise ValidationError("Unknown status filter.", details={"field": "status"})
        query = query.filter(Complaint.status == status)

    term = (q or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Complaint.reference_number.ilike(pattern),
                Complaint.name.ilike(pattern),
                Complaint.category.ilike(pattern),
                Complaint.description.ilike(pattern),
            )
        )
    return query.order_by(Complaint.created_at.desc(), Complaint.id.desc())


def paginate_complaints(actor: Actor, status: Optional[str] = None, q: Optional[str] = None, page: int = 1, per_page: int = 20):
    return filtered_query(actor, status, q).paginate(page=max(1, page), per_page=min(max(1, per_page), 100), error_out=False)


def page_payload(pagination, serializer) -> Dict:
    return {
        "items": [serializer(item) for item in pagination.items],
        "page": pagination.page,
        "per_page": pagination.per_page,
        "pages": pagination.pages,
        "total": pagination.total,
    }


def status_counts(actor: Actor) -> Dict[str, int]:
    """Per-status totals within the actor's scope, zero-filled."""
    scoped_ids = scoped_query(actor).with_entities(Complaint.id).subquery()
    rows = (
        db.session.query(Complaint.status, func.count(Complaint.id))
        .filter(Complaint.id.in_(db.select(scoped_ids.c.id)))
        .group_by(Complaint.status)
        .all()
    )
    counts = {status: 0 for status in COMPLAINT_STATUSES}
    counts.update({status: total for status, total in rows})
    counts["total"] = sum(total for _, total in rows)
    return counts


def find_by_reference(reference: Optional[str]) -> Complaint:
    complaint = Complaint.query.filter_by(reference_number=normalize_reference(reference)).first()
    if complaint is None:
        raise NotFoundError("Complaint not found. Please check your reference number.")
    return complaint


def find_scoped(actor: Actor, reference: Optional[str]) -> Complaint:
    """Lookup within scope; out-of-scope complaints are reported as missing."""
    complaint = scoped_query(actor).filter(Complaint.reference_number == normalize_reference(reference)).first()
    if complaint is None:
        raise NotFoundError("Complaint not found.")
    return complaint
