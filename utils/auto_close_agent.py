"""Scheduled sweep closing resolved complaints whose verification window lapsed."""
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app

from models import Complaint
from utils.errors import ComplaintDeskError
from utils.lifecycle import close_if_lapsed


def _lapsed_complaints(now: datetime, window_days: int) -> List[Complaint]:
    # resolved_at <= now - window is exactly "remaining days == 0"
    cutoff = now - timedelta(days=window_days)
    return (
        Complaint.query.filter(Complaint.status == "resolved", Complaint.resolved_at <= cutoff)
        .order_by(Complaint.resolved_at.asc())
        .all()
    )


def run_auto_close_cycle(app, now: Optional[datetime] = None) -> int:
    """Close every lapsed complaint; returns how many were closed by this run."""
    with app.app_context():
        moment = now or datetime.utcnow()
        window_days = int(current_app.config.get("VERIFICATION_WINDOW_DAYS", 7))
        closed = 0
        for complaint in _lapsed_complaints(moment, window_days):
            reference_number = complaint.reference_number
            try:
                if close_if_lapsed(complaint, moment):
                    closed += 1
            except ComplaintDeskError as exc:
                current_app.logger.warning(
                    "Auto-close skipped",
                    extra={"reference_number": reference_number, "error": exc.message},
                )
        current_app.logger.info("Auto-close sweep finished", extra={"closed": closed, "window_days": window_days})
        return closed
