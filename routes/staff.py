"""Admin and department work queues: scoped listings, transitions and internal discussion."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileSize
from wtforms import BooleanField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from models import DEPARTMENTS, Complaint, STAFF_ROLES
from utils.actor import Actor
from utils.audit_trail import timeline_payload
from utils.comments import add_comment, visible_comments
from utils.decorators import roles_required
from utils.errors import ComplaintDeskError, ValidationError
from utils.image_utils import ALLOWED_IMAGE_EXTENSIONS, DEFAULT_MAX_IMAGE_BYTES, discard_attachment, store_attachment
from utils.lifecycle import (
    apply_transition,
    available_actions,
    check_transition,
    close_if_lapsed,
    remaining_window_days,
    validate_fields,
)
from utils.queries import find_scoped, page_payload, paginate_complaints, status_counts

staff_bp = Blueprint("staff", __name__, url_prefix="/staff")


class TransitionForm(FlaskForm):
    action = StringField("Action", validators=[DataRequired(), Length(max=20)])
    department = StringField("Department", validators=[Optional(), Length(max=30)])
    remarks = TextAreaField("Remarks", validators=[Optional(), Length(max=2000)])
    resolution_details = TextAreaField("Resolution details", validators=[Optional(), Length(max=5000)])
    resolution_image = FileField(
        "Resolution proof",
        validators=[
            FileAllowed(sorted(ALLOWED_IMAGE_EXTENSIONS), "Images only"),
            FileSize(max_size=DEFAULT_MAX_IMAGE_BYTES, message="File exceeds size limits"),
        ],
    )


class StaffCommentForm(FlaskForm):
    content = TextAreaField("Comment", validators=[DataRequired(), Length(max=5000)])
    is_internal = BooleanField("Internal note")


def _detail_payload(complaint: Complaint, actor: Actor) -> dict:
    return {
        "complaint": complaint.staff_payload(),
        "timeline": timeline_payload(complaint),
        "comments": [c.payload() for c in visible_comments(complaint, actor)],
        "window_days_remaining": remaining_window_days(complaint) if complaint.status == "resolved" else None,
        "available_actions": available_actions(complaint, actor),
    }


@staff_bp.route("/complaints", methods=["GET"])
@roles_required(*STAFF_ROLES)
def list_complaints():
    actor = Actor.from_user(current_user)
    pagination = paginate_complaints(
        actor,
        status=request.args.get("status"),
        q=request.args.get("q"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", current_app.config.get("COMPLAINTS_PER_PAGE", 20), type=int),
    )
    payload = page_payload(pagination, lambda c: c.staff_payload())
    payload["counts"] = status_counts(actor)
    payload["departments"] = DEPARTMENTS
    return jsonify(payload)


@staff_bp.route("/complaints/<reference>", methods=["GET"])
@roles_required(*STAFF_ROLES)
def complaint_detail(reference):
    actor = Actor.from_user(current_user)
    complaint = find_scoped(actor, reference)
    close_if_lapsed(complaint)
    return jsonify(_detail_payload(complaint, actor))


@staff_bp.route("/complaints/<reference>/transitions", methods=["POST"])
@roles_required(*STAFF_ROLES)
def transition_complaint(reference):
    actor = Actor.from_user(current_user)
    complaint = find_scoped(actor, reference)
    form = TransitionForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)

    fields = {
        "department": form.department.data,
        "remarks": form.remarks.data,
        "resolution_details": form.resolution_details.data,
    }
    # Proof images are only accepted as uploads; every check runs before the file is stored.
    transition = check_transition(complaint, form.action.data, actor)
    upload = form.resolution_image.data if transition.action == "resolve" else None
    validate_fields(transition, fields, uploaded=("resolution_image_url",) if upload else ())
    if upload is None:
        apply_transition(complaint, transition.action, actor, fields)
        return jsonify(_detail_payload(complaint, actor))

    stored = store_attachment(upload, field="resolution_image")
    fields["resolution_image_url"] = stored["url"]
    try:
        apply_transition(complaint, transition.action, actor, fields)
    except ComplaintDeskError:
        discard_attachment(stored)
        raise
    return jsonify(_detail_payload(complaint, actor))


@staff_bp.route("/complaints/<reference>/comments", methods=["POST"])
@roles_required(*STAFF_ROLES)
def staff_comment(reference):
    actor = Actor.from_user(current_user)
    complaint = find_scoped(actor, reference)
    form = StaffCommentForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)
    comment = add_comment(complaint, actor, form.content.data, is_internal=bool(form.is_internal.data))
    return jsonify({"comment": comment.payload()}), 201
