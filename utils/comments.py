"""Flat discussion thread on a complaint with staff-only internal notes."""
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Comment, Complaint
from utils.actor import SUBMITTER_ROLE, Actor
from utils.errors import AuthorizationError, DependencyError, ValidationError

MAX_COMMENT_LENGTH = 5000


def _author_type(actor: Actor) -> str:
    if actor.role == SUBMITTER_ROLE:
        return "complainant"
    return actor.role


def visible_comments(complaint: Complaint, actor: Actor) -> List[Comment]:
    """All comments for staff; non-internal only for everyone else. Oldest first."""
    query = Comment.query.filter_by(complaint_id=complaint.id)
    if not actor.is_staff:
        query = query.filter(Comment.is_internal.is_(False))
    return query.order_by(Comment.created_at.asc(), Comment.id.asc()).all()


def add_comment(
    complaint: Complaint,
    actor: Actor,
    content: Optional[str],
    is_internal: bool = False,
    now: Optional[datetime] = None,
) -> Comment:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty.", details={"field": "content"})
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError("Comment is too long.", details={"field": "content", "max_length": MAX_COMMENT_LENGTH})
    if actor.role == "department" and complaint.assigned_department != actor.department:
        raise AuthorizationError("This complaint is not assigned to your department.")

    comment = Comment(
        complaint_id=complaint.id,
        author_name=actor.display_name or "Anonymous",
        author_type=_author_type(actor),
        content=text,
        # Submitters can never write internal notes.
        is_internal=bool(is_internal) and actor.is_staff,
        created_at=now or datetime.utcnow(),
    )
    try:
        db.session.add(comment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Comment write failed", extra={"reference_number": complaint.reference_number})
        raise DependencyError("Could not save the comment. Please retry.") from exc

    current_app.logger.info(
        "Comment added",
        extra={
            "reference_number": complaint.reference_number,
            "author_type": comment.author_type,
            "internal": comment.is_internal,
        },
    )
    return comment
