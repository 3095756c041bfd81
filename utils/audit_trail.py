"""Append-only complaint audit trail and the account-administration system log."""
from datetime import datetime
from typing import Dict, List, Optional

from flask import has_request_context, request

from extensions import db
from models import AuditEntry, Complaint, SystemAuditLog
from utils.actor import Actor


def record_entry(complaint: Complaint, action: str, actor: Actor, details: Optional[str] = None, now: Optional[datetime] = None) -> AuditEntry:
    """Stage one entry in the caller's transaction; committing is the caller's job."""
    entry = AuditEntry(
        complaint_id=complaint.id,
        action=action,
        performed_by=actor.audit_id,
        details=details,
        created_at=now or datetime.utcnow(),
    )
    db.session.add(entry)
    return entry


def entries_for(complaint: Complaint) -> List[AuditEntry]:
    return (
        AuditEntry.query.filter_by(complaint_id=complaint.id)
        .order_by(AuditEntry.created_at.asc(), AuditEntry.id.asc())
        .all()
    )


def timeline_payload(complaint: Complaint, public: bool = False) -> List[Dict]:
    """Ordered entries; ``public`` drops the acting account ids."""
    return [entry.public_payload() if public else entry.payload() for entry in entries_for(complaint)]


def record_system_event(
    action: str,
    actor=None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    details: Optional[Dict] = None,
    commit: bool = True,
) -> SystemAuditLog:
    """Write an account-administration or security event to ``system_audit_log``."""
    ip_address = user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = (request.headers.get("User-Agent") or "unknown")[:255]
    log = SystemAuditLog(
        action=action,
        actor_id=getattr(actor, "id", None),
        actor_email=getattr(actor, "email", None),
        target_type=target_type,
        target_id=target_id,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(log)
    if commit:
        db.session.commit()
    return log
