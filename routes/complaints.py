"""Complaint intake and submitter self-service by reference number."""
from flask import Blueprint, current_app, jsonify, request, send_from_directory
from flask_login import current_user
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileSize
from wtforms import BooleanField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional

from models import COMPLAINT_CATEGORIES, Complaint
from utils import rate_limiter
from utils.actor import Actor
from utils.audit_trail import timeline_payload
from utils.comments import add_comment, visible_comments
from utils.complaint_intake import create_complaint
from utils.decorators import roles_required
from utils.errors import ComplaintDeskError, ValidationError
from utils.image_utils import ALLOWED_IMAGE_EXTENSIONS, DEFAULT_MAX_IMAGE_BYTES, discard_attachment, store_attachment
from utils.lifecycle import apply_transition, available_actions, close_if_lapsed, remaining_window_days
from utils.queries import find_by_reference, page_payload, paginate_complaints, status_counts
from utils.security import client_user_agent

complaints_bp = Blueprint("complaints", __name__, url_prefix="/complaints")

CATEGORY_CHOICES = [(c, c.replace("_", " ").title()) for c in COMPLAINT_CATEGORIES]


class ComplaintForm(FlaskForm):
    name = StringField("Full Name", validators=[Optional(), Length(max=150)])
    email = StringField("Email", validators=[Optional(), Email(), Length(max=255)])
    student_id = StringField("Student/Employee ID", validators=[Optional(), Length(max=50)])
    is_anonymous = BooleanField("Submit anonymously")
    category = SelectField("Category", choices=CATEGORY_CHOICES, validators=[DataRequired()])
    description = TextAreaField("Describe your complaint", validators=[DataRequired(), Length(max=5000)])
    attachment = FileField(
        "Attachment (image, max 5MB)",
        validators=[
            FileAllowed(sorted(ALLOWED_IMAGE_EXTENSIONS), "Images only"),
            FileSize(max_size=DEFAULT_MAX_IMAGE_BYTES, message="File exceeds size limits"),
        ],
    )


class DisputeForm(FlaskForm):
    reason = TextAreaField("Why is the resolution unsatisfactory?", validators=[DataRequired(), Length(max=2000)])


class CommentForm(FlaskForm):
    content = TextAreaField("Comment", validators=[DataRequired(), Length(max=5000)])


def _submitter(complaint: Complaint) -> Actor:
    return Actor.submitter(complaint.name)


def _comment_author(complaint: Complaint) -> Actor:
    # The owning student account comments as itself; anyone else holding the reference is the complainant.
    if current_user.is_authenticated and complaint.user_id == current_user.id and current_user.role == "student":
        return Actor.from_user(current_user)
    return _submitter(complaint)


def _tracking_payload(complaint: Complaint) -> dict:
    actor = _submitter(complaint)
    return {
        "complaint": complaint.public_payload(),
        "timeline": timeline_payload(complaint, public=True),
        "comments": [c.payload() for c in visible_comments(complaint, actor)],
        "window_days_remaining": remaining_window_days(complaint) if complaint.status == "resolved" else None,
        "available_actions": available_actions(complaint, actor),
    }


@complaints_bp.route("", methods=["POST"])
def submit_complaint():
    form = ComplaintForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)

    origin = rate_limiter.resolve_origin()
    # Checked before the upload is stored so a limited request leaves no orphan file.
    rate_limiter.check(origin)

    stored = store_attachment(form.attachment.data) if form.attachment.data else None
    try:
        complaint = create_complaint(
            {
                "name": form.name.data,
                "email": form.email.data,
                "student_id": form.student_id.data,
                "is_anonymous": form.is_anonymous.data,
                "category": form.category.data,
                "description": form.description.data,
            },
            user=current_user if current_user.is_authenticated else None,
            origin=origin,
            user_agent=client_user_agent(),
            attachment_url=stored["url"] if stored else None,
        )
    except ComplaintDeskError:
        if stored:
            discard_attachment(stored)
        raise
    return jsonify({"reference_number": complaint.reference_number, "status": complaint.status}), 201


@complaints_bp.route("/track/<reference>", methods=["GET"])
def track_complaint(reference):
    complaint = find_by_reference(reference)
    if close_if_lapsed(complaint):
        current_app.logger.info("Lapsed complaint closed on lookup", extra={"reference_number": complaint.reference_number})
    return jsonify(_tracking_payload(complaint))


@complaints_bp.route("/track/<reference>/confirm", methods=["POST"])
def confirm_resolution(reference):
    complaint = find_by_reference(reference)
    apply_transition(complaint, "confirm", _submitter(complaint))
    return jsonify(_tracking_payload(complaint))


@complaints_bp.route("/track/<reference>/dispute", methods=["POST"])
def dispute_resolution(reference):
    complaint = find_by_reference(reference)
    form = DisputeForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)
    apply_transition(complaint, "dispute", _submitter(complaint), {"reason": form.reason.data})
    return jsonify(_tracking_payload(complaint))


@complaints_bp.route("/track/<reference>/comments", methods=["POST"])
def submitter_comment(reference):
    complaint = find_by_reference(reference)
    form = CommentForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)
    comment = add_comment(complaint, _comment_author(complaint), form.content.data, is_internal=False)
    return jsonify({"comment": comment.payload()}), 201


@complaints_bp.route("/mine", methods=["GET"])
@roles_required("student")
def my_complaints():
    actor = Actor.from_user(current_user)
    pagination = paginate_complaints(
        actor,
        status=request.args.get("status"),
        q=request.args.get("q"),
        page=request.args.get("page", 1, type=int),
        per_page=current_app.config.get("COMPLAINTS_PER_PAGE", 20),
    )
    payload = page_payload(pagination, lambda c: c.public_payload())
    payload["counts"] = status_counts(actor)
    return jsonify(payload)


@complaints_bp.route("/attachments/<path:filename>", methods=["GET"])
def serve_attachment(filename):
    return send_from_directory(current_app.config["ATTACHMENT_UPLOAD_FOLDER"], filename)
