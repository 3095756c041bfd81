"""SMTP-backed email dispatcher for complaint status notifications."""
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Dict, List, Tuple

from flask import current_app, has_request_context, render_template, url_for
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Complaint, NotificationLog
from utils.markdown_formatter import format_status_markdown, markdown_to_email_html, markdown_to_plaintext

NOTIFY_ON_STATUSES = ("submitted", "verified", "rejected", "in_progress", "resolved")


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def _render_email_content(subject: str, markdown_body: str, context: Dict) -> Tuple[str, str]:
    """Return plaintext and HTML bodies from one markdown source."""
    text_body = markdown_to_plaintext(markdown_body)
    ctx = dict(context or {})
    preheader = ctx.pop("preheader", "")
    html_body = render_template(
        "email/notification.html",
        subject=subject,
        content_html=markdown_to_email_html(markdown_body),
        preheader=preheader,
        **ctx,
    )
    return text_body, html_body


def _resolve_sender() -> str:
    return current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME") or ""


def _dispatch_email(subject: str, text_body: str, html_body: str, sender: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(text_body or markdown_to_plaintext(html_body))
    msg.add_alternative(html_body, subtype="html")

    host = current_app.config.get("MAIL_SERVER")
    port = int(current_app.config.get("MAIL_PORT", 465))
    username = current_app.config.get("MAIL_USERNAME")
    password = current_app.config.get("MAIL_PASSWORD")
    use_tls = bool(current_app.config.get("MAIL_USE_TLS"))
    use_ssl = bool(current_app.config.get("MAIL_USE_SSL"))

    if not host:
        raise EmailDeliveryError("MAIL_SERVER is not configured")

    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, context=ssl.create_default_context(), timeout=15) as server:
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port, timeout=15) as server:
                server.ehlo()
                if use_tls:
                    server.starttls(context=ssl.create_default_context())
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc


def _persist_log(
    complaint: Complaint | None,
    sender: str,
    recipients: List[str],
    subject: str,
    body: str,
    status: str,
    error: str | None = None,
) -> None:
    log = NotificationLog(
        complaint_id=complaint.id if complaint else None,
        sender_email=sender,
        recipient_emails=list(recipients),
        subject=subject,
        email_body_snapshot=body,
        delivery_status=status,
        error_message=error,
    )
    db.session.add(log)
    db.session.commit()


def send_email(recipients: List[str], subject: str, markdown_body: str, complaint: Complaint | None = None, preheader: str = "") -> str:
    """Render and send one message; returns the recorded delivery status.

    Raises ``EmailDeliveryError`` after recording a FAILED row.
    """
    sender = _resolve_sender()
    text_body, html_body = _render_email_content(subject, markdown_body, {"preheader": preheader})

    if current_app.config.get("MAIL_SUPPRESS_SEND"):
        _persist_log(complaint, sender, recipients, subject, html_body, status="SUPPRESSED")
        current_app.logger.info("Email suppressed", extra={"subject": subject, "recipients": len(recipients)})
        return "SUPPRESSED"

    try:
        _dispatch_email(subject, text_body, html_body, sender, recipients)
    except EmailDeliveryError as exc:
        _persist_log(complaint, sender, recipients, subject, html_body, status="FAILED", error=str(exc))
        raise
    _persist_log(complaint, sender, recipients, subject, html_body, status="SENT")
    return "SENT"


def _track_url(complaint: Complaint) -> str | None:
    base = current_app.config.get("PUBLIC_TRACK_URL")
    if base:
        return f"{base.rstrip('/')}/{complaint.reference_number}"
    if has_request_context():
        return url_for("complaints.track_complaint", reference=complaint.reference_number, _external=True)
    return None


def notify_status_change(complaint: Complaint) -> str | None:
    """Best-effort submitter notification; never raises.

    Returns the delivery status, or ``None`` when nothing was sent.
    """
    if complaint.status not in NOTIFY_ON_STATUSES or not complaint.email:
        return None

    subject = f"[{complaint.reference_number}] Complaint {complaint.status.replace('_', ' ')}"
    markdown_body = format_status_markdown(
        complaint.public_payload(),
        track_url=_track_url(complaint),
        window_days=int(current_app.config.get("VERIFICATION_WINDOW_DAYS", 7)),
    )
    try:
        return send_email([complaint.email], subject, markdown_body, complaint=complaint, preheader=subject)
    except EmailDeliveryError as exc:
        current_app.logger.warning(
            "Status notification failed",
            extra={"reference_number": complaint.reference_number, "status": complaint.status, "error": str(exc)},
        )
        return "FAILED"
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Notification log write failed",
            extra={"reference_number": complaint.reference_number},
        )
        return None
