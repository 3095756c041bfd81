"""Super-admin console: account management, submission origins and the system audit log."""
from collections import OrderedDict
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from flask_wtf import FlaskForm
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from wtforms import PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional, ValidationError

from extensions import db
from models import ACCOUNT_ROLES, DEPARTMENTS, SubmissionFingerprint, SystemAuditLog, User
from utils.audit_trail import record_system_event
from utils.decorators import roles_required
from utils.errors import ConflictError, NotFoundError
from utils.errors import ValidationError as RequestValidationError
from utils.security import password_meets_policy

superadmin_bp = Blueprint("superadmin", __name__, url_prefix="/superadmin")

ROLE_CHOICES = [(r, r.replace("_", " ").title()) for r in ACCOUNT_ROLES]
DEPARTMENT_CHOICES = [("", "None")] + [(key, label) for key, label in DEPARTMENTS.items()]
DATE_RANGES = ("today", "week", "month", "all")


class _RoleDepartmentMixin:
    def validate(self, extra_validators=None):
        if not super().validate(extra_validators=extra_validators):
            return False
        # Department staff must carry a department tag; an empty choice never matches a complaint.
        if self.role.data == "department" and not self.department.data:
            self.department.errors.append("Please select a department for department staff.")
            return False
        return True


class AccountForm(_RoleDepartmentMixin, FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    full_name = StringField("Full Name", validators=[Optional(), Length(max=150)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=10, max=128)])
    role = SelectField("Role", choices=ROLE_CHOICES, default="admin", validators=[DataRequired()])
    department = SelectField("Department", choices=DEPARTMENT_CHOICES, default="")

    def validate_password(self, field):
        ok, reason = password_meets_policy(field.data or "")
        if not ok:
            raise ValidationError(reason)


class AccountRoleForm(_RoleDepartmentMixin, FlaskForm):
    role = SelectField("Role", choices=ROLE_CHOICES, validators=[DataRequired()])
    department = SelectField("Department", choices=DEPARTMENT_CHOICES, default="")


def _range_start(range_name: str, now: datetime | None = None) -> datetime | None:
    """UTC start of a reporting range; days start at local midnight."""
    if range_name not in DATE_RANGES:
        raise RequestValidationError("Unknown date range.", details={"field": "range", "allowed": list(DATE_RANGES)})
    if range_name == "all":
        return None
    zone = ZoneInfo(current_app.config.get("RATE_LIMIT_TIMEZONE", "Asia/Manila"))
    local_now = (now or datetime.now(timezone.utc)).astimezone(zone)
    start = datetime.combine(local_now.date(), time.min, tzinfo=zone)
    if range_name == "week":
        start -= timedelta(days=7)
    elif range_name == "month":
        start -= timedelta(days=30)
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def _get_account(account_id: str) -> User:
    user = db.session.get(User, account_id)
    if user is None:
        raise NotFoundError("Account not found.")
    return user


@superadmin_bp.route("/accounts", methods=["GET"])
@roles_required("super_admin")
def list_accounts():
    query = User.query
    role = (request.args.get("role") or "").strip().lower()
    if role and role != "all":
        query = query.filter(User.role == role)
    term = (request.args.get("q") or "").strip()
    if term:
        query = query.filter(or_(User.email.ilike(f"%{term}%"), User.full_name.ilike(f"%{term}%")))
    users = query.order_by(User.created_at.desc()).all()
    return jsonify({"items": [u.payload() for u in users], "total": len(users)})


@superadmin_bp.route("/accounts", methods=["POST"])
@roles_required("super_admin")
def create_account():
    form = AccountForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError("An account with this email already exists.", details={"field": "email"})

    user = User(
        email=email,
        full_name=(form.full_name.data or "").strip() or None,
        role=form.role.data,
        department=form.department.data if form.role.data == "department" else None,
        is_active=True,
    )
    user.set_password(form.password.data)
    try:
        db.session.add(user)
        db.session.flush()
        record_system_event(
            "User Created",
            actor=current_user,
            target_type="user",
            target_id=user.id,
            details={"email": email, "role": user.role, "department": user.department},
            commit=False,
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("An account with this email already exists.", details={"field": "email"}) from exc

    current_app.logger.info("Account created", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": user.payload()}), 201


@superadmin_bp.route("/accounts/<account_id>", methods=["PATCH"])
@roles_required("super_admin")
def update_account_role(account_id):
    user = _get_account(account_id)
    form = AccountRoleForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)
    if user.id == current_user.id and form.role.data != "super_admin":
        raise ConflictError("You cannot change your own role.")

    user.role = form.role.data
    user.department = form.department.data if form.role.data == "department" else None
    record_system_event(
        "User Role Updated",
        actor=current_user,
        target_type="user",
        target_id=user.id,
        details={"new_role": user.role, "new_department": user.department},
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Account role updated", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": user.payload()})


@superadmin_bp.route("/accounts/<account_id>", methods=["DELETE"])
@roles_required("super_admin")
def deactivate_account(account_id):
    user = _get_account(account_id)
    if user.id == current_user.id:
        raise ConflictError("You cannot deactivate your own account.")

    # Accounts are deactivated, not deleted, so audit references stay valid.
    user.is_active = False
    record_system_event(
        "User Deactivated",
        actor=current_user,
        target_type="user",
        target_id=user.id,
        details={"email": user.email},
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Account deactivated", extra={"user_id": user.id})
    return jsonify({"user": user.payload()})


@superadmin_bp.route("/submissions", methods=["GET"])
@roles_required("super_admin")
def submissions_by_origin():
    start = _range_start((request.args.get("range") or "today").strip().lower())
    query = SubmissionFingerprint.query
    if start is not None:
        query = query.filter(SubmissionFingerprint.created_at >= start)
    fingerprints = query.order_by(SubmissionFingerprint.created_at.desc()).all()

    grouped: "OrderedDict[str, dict]" = OrderedDict()
    for fingerprint in fingerprints:
        group = grouped.setdefault(
            fingerprint.ip_address,
            {
                "ip_address": fingerprint.ip_address,
                "user_agent": fingerprint.user_agent,
                "first_submission": fingerprint.created_at,
                "last_submission": fingerprint.created_at,
                "submissions": [],
            },
        )
        group["submissions"].append(fingerprint.payload())
        group["first_submission"] = min(group["first_submission"], fingerprint.created_at)
        group["last_submission"] = max(group["last_submission"], fingerprint.created_at)

    origins = []
    for group in grouped.values():
        group["count"] = len(group["submissions"])
        group["first_submission"] = group["first_submission"].isoformat()
        group["last_submission"] = group["last_submission"].isoformat()
        origins.append(group)
    return jsonify({"origins": origins, "total_submissions": len(fingerprints), "unique_origins": len(origins)})


@superadmin_bp.route("/audit-log", methods=["GET"])
@roles_required("super_admin")
def system_audit_log():
    start = _range_start((request.args.get("range") or "today").strip().lower())
    query = SystemAuditLog.query
    if start is not None:
        query = query.filter(SystemAuditLog.created_at >= start)
    action = (request.args.get("action") or "").strip()
    if action:
        query = query.filter(SystemAuditLog.action == action)
    entries = query.order_by(SystemAuditLog.created_at.desc(), SystemAuditLog.id.desc()).limit(500).all()
    return jsonify({"items": [e.payload() for e in entries], "total": len(entries)})
