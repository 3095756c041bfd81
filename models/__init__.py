"""Core data models for accounts, complaints, audit trails and abuse review."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


ACCOUNT_ROLES: tuple[str, ...] = (
	"student",
	"department",
	"admin",
	"super_admin",
)

STAFF_ROLES: tuple[str, ...] = (
	"department",
	"admin",
	"super_admin",
)

DEPARTMENTS: dict[str, str] = {
	"academic": "Academic Affairs",
	"facilities": "Facilities Management",
	"finance": "Finance Office",
	"hr": "Human Resources",
	"security": "Security Office",
	"registrar": "Registrar",
	"student_affairs": "Student Affairs",
}

COMPLAINT_CATEGORIES: tuple[str, ...] = (
	"academic",
	"facilities",
	"finance",
	"hr",
	"security",
	"registrar",
	"student_affairs",
	"other",
)

COMPLAINT_STATUSES: tuple[str, ...] = (
	"submitted",
	"verified",
	"rejected",
	"in_progress",
	"resolved",
	"closed",
	"disputed",
)

COMMENT_AUTHOR_TYPES: tuple[str, ...] = (
	"complainant",
	"student",
	"department",
	"admin",
	"super_admin",
)

NOTIFICATION_STATUSES: tuple[str, ...] = (
	"SENT",
	"FAILED",
	"SUPPRESSED",
)

ANONYMOUS_NAME = "Anonymous"


def _in_clause(column: str, values) -> str:
	quoted = ",".join(f"'{v}'" for v in values)
	return f"{column} IN ({quoted})"


def _iso(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=True)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="student", index=True)
	department = db.Column(db.String(30), nullable=True, index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("role", ACCOUNT_ROLES), name="ck_user_role_valid"),
		db.CheckConstraint(
			"(role = 'department' AND department IS NOT NULL AND department <> '') "
			"OR (role <> 'department' AND department IS NULL)",
			name="ck_user_department_matches_role",
		),
	)

	complaints = db.relationship("Complaint", back_populates="user", lazy="dynamic", foreign_keys="Complaint.user_id")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_staff(self) -> bool:
		return self.role in STAFF_ROLES

	@property
	def display_name(self) -> str:
		return self.full_name or self.email

	def payload(self) -> dict:
		return {
			"id": self.id,
			"email": self.email,
			"full_name": self.full_name,
			"role": self.role,
			"department": self.department,
			"is_active": self.is_active,
			"created_at": _iso(self.created_at),
			"last_login_at": _iso(self.last_login_at),
		}


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	reference_number = db.Column(db.String(40), unique=True, nullable=False, index=True)
	category = db.Column(db.String(30), nullable=False, index=True)
	description = db.Column(db.Text, nullable=False)
	attachment_url = db.Column(db.String(500), nullable=True)

	name = db.Column(db.String(150), nullable=False, default=ANONYMOUS_NAME)
	email = db.Column(db.String(255), nullable=True)
	student_id = db.Column(db.String(50), nullable=True)
	is_anonymous = db.Column(db.Boolean, nullable=False, default=False)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)

	status = db.Column(db.String(20), nullable=False, default="submitted", index=True)
	assigned_department = db.Column(db.String(30), nullable=True, index=True)
	admin_remarks = db.Column(db.Text, nullable=True)
	department_remarks = db.Column(db.Text, nullable=True)
	resolution_details = db.Column(db.Text, nullable=True)
	resolution_image_url = db.Column(db.String(500), nullable=True)
	dispute_reason = db.Column(db.Text, nullable=True)
	user_verified = db.Column(db.Boolean, nullable=False, default=False)

	verified_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	verified_at = db.Column(db.DateTime, nullable=True)
	started_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	started_at = db.Column(db.DateTime, nullable=True)
	resolved_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	resolved_at = db.Column(db.DateTime, nullable=True, index=True)
	closed_at = db.Column(db.DateTime, nullable=True)
	disputed_at = db.Column(db.DateTime, nullable=True)

	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
	)

	__table_args__ = (
		db.CheckConstraint(_in_clause("category", COMPLAINT_CATEGORIES), name="ck_complaint_category_valid"),
		db.CheckConstraint(_in_clause("status", COMPLAINT_STATUSES), name="ck_complaint_status_valid"),
		db.CheckConstraint(
			"assigned_department IS NULL OR " + _in_clause("assigned_department", DEPARTMENTS),
			name="ck_complaint_department_valid",
		),
		db.CheckConstraint(
			"(status IN ('submitted','rejected') AND assigned_department IS NULL) "
			"OR (status NOT IN ('submitted','rejected') AND assigned_department IS NOT NULL)",
			name="ck_complaint_department_matches_status",
		),
		db.CheckConstraint(
			"status NOT IN ('resolved','closed','disputed') "
			"OR (resolution_details IS NOT NULL AND resolution_image_url IS NOT NULL)",
			name="ck_complaint_resolution_complete",
		),
		db.CheckConstraint(
			"(status = 'disputed' AND dispute_reason IS NOT NULL) OR (status <> 'disputed' AND dispute_reason IS NULL)",
			name="ck_complaint_dispute_reason",
		),
		db.Index("ix_complaints_department_status", "assigned_department", "status"),
	)

	user = db.relationship("User", back_populates="complaints", foreign_keys=[user_id])
	audit_entries = db.relationship(
		"AuditEntry",
		back_populates="complaint",
		order_by="(AuditEntry.created_at, AuditEntry.id)",
		lazy="selectin",
	)
	comments = db.relationship(
		"Comment",
		back_populates="complaint",
		order_by="(Comment.created_at, Comment.id)",
		lazy="selectin",
	)

	@property
	def department_label(self) -> str | None:
		if not self.assigned_department:
			return None
		return DEPARTMENTS.get(self.assigned_department, self.assigned_department)

	def public_payload(self) -> dict:
		"""Submitter-facing view; never exposes internal actor ids."""
		return {
			"reference_number": self.reference_number,
			"category": self.category,
			"description": self.description,
			"attachment_url": self.attachment_url,
			"name": self.name,
			"is_anonymous": self.is_anonymous,
			"status": self.status,
			"assigned_department": self.assigned_department,
			"department_label": self.department_label,
			"admin_remarks": self.admin_remarks,
			"department_remarks": self.department_remarks,
			"resolution_details": self.resolution_details,
			"resolution_image_url": self.resolution_image_url,
			"dispute_reason": self.dispute_reason,
			"user_verified": self.user_verified,
			"created_at": _iso(self.created_at),
			"verified_at": _iso(self.verified_at),
			"started_at": _iso(self.started_at),
			"resolved_at": _iso(self.resolved_at),
			"closed_at": _iso(self.closed_at),
			"disputed_at": _iso(self.disputed_at),
		}

	def staff_payload(self) -> dict:
		payload = self.public_payload()
		payload.update(
			{
				"id": self.id,
				"email": self.email,
				"student_id": self.student_id,
				"verified_by": self.verified_by,
				"started_by": self.started_by,
				"resolved_by": self.resolved_by,
				"updated_at": _iso(self.updated_at),
			}
		)
		return payload


class AuditEntry(db.Model):
	__tablename__ = "audit_trail"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	action = db.Column(db.String(80), nullable=False)
	performed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	details = db.Column(db.Text, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.Index("ix_audit_trail_complaint_created", "complaint_id", "created_at"),
	)

	complaint = db.relationship("Complaint", back_populates="audit_entries")

	def public_payload(self) -> dict:
		"""Submitter-facing entry; the acting account stays private."""
		return {
			"action": self.action,
			"details": self.details,
			"created_at": _iso(self.created_at),
		}

	def payload(self) -> dict:
		payload = self.public_payload()
		payload["performed_by"] = self.performed_by
		return payload


class SubmissionFingerprint(db.Model):
	__tablename__ = "complaint_submissions"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	ip_address = db.Column(db.String(64), nullable=False, index=True)
	user_agent = db.Column(db.String(255), nullable=True)
	day_bucket = db.Column(db.Date, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.UniqueConstraint("ip_address", "day_bucket", name="uq_submission_origin_day"),
	)

	complaint = db.relationship("Complaint")

	def payload(self) -> dict:
		complaint = self.complaint
		return {
			"id": self.id,
			"ip_address": self.ip_address,
			"user_agent": self.user_agent,
			"day_bucket": self.day_bucket.isoformat(),
			"created_at": _iso(self.created_at),
			"complaint": {
				"reference_number": complaint.reference_number,
				"category": complaint.category,
				"status": complaint.status,
				"name": complaint.name,
			}
			if complaint
			else None,
		}


class Comment(db.Model):
	__tablename__ = "ticket_comments"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	author_name = db.Column(db.String(150), nullable=False)
	author_type = db.Column(db.String(20), nullable=False)
	content = db.Column(db.Text, nullable=False)
	is_internal = db.Column(db.Boolean, nullable=False, default=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("author_type", COMMENT_AUTHOR_TYPES), name="ck_comment_author_type"),
	)

	complaint = db.relationship("Complaint", back_populates="comments")

	def payload(self) -> dict:
		return {
			"id": self.id,
			"author_name": self.author_name,
			"author_type": self.author_type,
			"content": self.content,
			"is_internal": self.is_internal,
			"created_at": _iso(self.created_at),
		}


class SystemAuditLog(db.Model):
	__tablename__ = "system_audit_log"

	id = db.Column(db.Integer, primary_key=True)
	action = db.Column(db.String(80), nullable=False, index=True)
	actor_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	actor_email = db.Column(db.String(255), nullable=True)
	target_type = db.Column(db.String(30), nullable=True)
	target_id = db.Column(db.String(64), nullable=True)
	details = db.Column(db.JSON, nullable=True)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	def payload(self) -> dict:
		return {
			"id": self.id,
			"action": self.action,
			"actor_id": self.actor_id,
			"actor_email": self.actor_email,
			"target_type": self.target_type,
			"target_id": self.target_id,
			"details": self.details,
			"ip_address": self.ip_address,
			"created_at": _iso(self.created_at),
		}


class NotificationLog(db.Model):
	__tablename__ = "notification_logs"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=True, index=True)
	sender_email = db.Column(db.String(255), nullable=False)
	recipient_emails = db.Column(db.JSON, nullable=False)
	subject = db.Column(db.String(255), nullable=False)
	email_body_snapshot = db.Column(db.Text, nullable=False)
	delivery_status = db.Column(db.String(20), nullable=False, index=True)
	error_message = db.Column(db.Text, nullable=True)
	sent_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("delivery_status", NOTIFICATION_STATUSES), name="ck_notification_status"),
	)

	complaint = db.relationship("Complaint")
