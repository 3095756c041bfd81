"""Account sign-up, session login and CSRF token issuance."""
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Optional, ValidationError

from extensions import db
from models import User
from utils.audit_trail import record_system_event
from utils.errors import AuthenticationError, AuthorizationError, ConflictError
from utils.errors import ValidationError as RequestValidationError
from utils.security import password_meets_policy

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


class RegistrationForm(FlaskForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=10, max=128)])
    confirm_password = PasswordField(
        "Confirm Password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")]
    )

    def validate_email(self, field):
        domain = current_app.config.get("STUDENT_EMAIL_DOMAIN", "")
        address = (field.data or "").strip().lower()
        if domain and not address.endswith("@" + domain):
            raise ValidationError(f"Please use your institutional @{domain} email address.")

    def validate_password(self, field):
        ok, reason = password_meets_policy(field.data or "")
        if not ok:
            raise ValidationError(reason)


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me", validators=[Optional()])


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/register", methods=["POST"])
def register():
    form = RegistrationForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError("An account with this email already exists.", details={"field": "email"})

    user = User(full_name=form.full_name.data.strip(), email=email, role="student", is_active=True)
    user.set_password(form.password.data)
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("An account with this email already exists.", details={"field": "email"}) from exc

    login_user(user)
    record_system_event("REGISTER", actor=user, target_type="user", target_id=user.id)
    current_app.logger.info("Student registered", extra={"user_id": user.id})
    return jsonify({"user": user.payload()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    user = User.query.filter_by(email=form.email.data.lower().strip()).first()
    if not user or not user.check_password(form.password.data):
        record_system_event("LOGIN_FAILED", actor=user, details={"email": form.email.data.lower().strip()})
        current_app.logger.warning("Login failed", extra={"user_id": user.id if user else None})
        raise AuthenticationError("Invalid email or password.")

    if not user.is_active:
        raise AuthorizationError("Your account is inactive. Please contact the administrator.")

    login_user(user, remember=bool(form.remember_me.data), duration=timedelta(days=14))
    session.permanent = True
    user.last_login_at = datetime.utcnow()
    record_system_event("LOGIN", actor=user, target_type="user", target_id=user.id, commit=False)
    db.session.commit()
    current_app.logger.info("User logged in", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": user.payload()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user_id = current_user.id
    record_system_event("LOGOUT", actor=current_user, target_type="user", target_id=user_id)
    logout_user()
    session.clear()
    return jsonify({"logged_out": True})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.payload()})
