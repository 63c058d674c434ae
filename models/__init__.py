"""Entity store for complaints, their audit trail and notification inbox."""
import uuid
from datetime import datetime, timezone

from flask_login import UserMixin
from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def utcnow() -> datetime:
	"""Naive UTC timestamp, matching how DateTime columns are stored."""
	return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


USER_ROLES: tuple[str, ...] = (
	"ADMIN",
	"STAFF",
	"USER",
)

COMPLAINT_CATEGORIES: tuple[str, ...] = (
	"ROADS",
	"WATER",
	"ELECTRICITY",
	"SANITATION",
	"OTHER",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"LOW",
	"MEDIUM",
	"HIGH",
)

COMPLAINT_STATUSES: tuple[str, ...] = (
	"PENDING",
	"IN_PROGRESS",
	"RESOLVED",
)

ACTIVITY_ACTIONS: tuple[str, ...] = (
	"NEW_COMPLAINT",
	"STATUS_CHANGED",
	"ASSIGNED",
	"REASSIGNED",
	"PRIORITY_CHANGED",
	"DEPARTMENT_CHANGED",
	"COMMENT_ADDED",
)

NOTIFICATION_TYPES: tuple[str, ...] = (
	"COMPLAINT_CREATED",
	"COMPLAINT_ASSIGNED",
	"STATUS_UPDATED",
	"RESOLVED",
	"COMMENT_ADDED",
)


def _in_check(column: str, values: tuple[str, ...]) -> str:
	quoted = ",".join(f"'{v}'" for v in values)
	return f"{column} IN ({quoted})"


department_staff = db.Table(
	"department_staff",
	db.Column("department_id", db.Integer, db.ForeignKey("departments.id"), primary_key=True),
	db.Column("user_id", db.String(36), db.ForeignKey("users.id"), primary_key=True),
)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(10), nullable=False, default="USER", index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(_in_check("role", USER_ROLES), name="ck_user_role_valid"),
	)

	departments = db.relationship(
		"Department",
		secondary=department_staff,
		back_populates="staff",
		order_by="Department.name",
	)
	complaints = db.relationship(
		"Complaint",
		back_populates="reporter",
		foreign_keys="Complaint.user_id",
		lazy="dynamic",
	)
	assigned_complaints = db.relationship(
		"Complaint",
		back_populates="assignee",
		foreign_keys="Complaint.assigned_to_id",
		lazy="dynamic",
	)
	notifications = db.relationship("Notification", back_populates="recipient", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return self.role == "ADMIN"

	@property
	def is_staff(self) -> bool:
		return self.role == "STAFF"

	def summary(self) -> dict:
		return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

	def to_dict(self, with_counts: bool = False) -> dict:
		payload = self.summary()
		payload.update(
			{
				"isActive": self.is_active,
				"departments": [{"id": d.id, "name": d.name} for d in self.departments],
				"createdAt": isoformat(self.created_at),
			}
		)
		if with_counts:
			payload["_count"] = {
				"complaints": self.complaints.count(),
				"assignedComplaints": self.assigned_complaints.count(),
			}
		return payload


class Department(db.Model):
	__tablename__ = "departments"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(150), unique=True, nullable=False, index=True)
	description = db.Column(db.String(500), nullable=True)
	email = db.Column(db.String(255), nullable=True)
	phone = db.Column(db.String(50), nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

	staff = db.relationship("User", secondary=department_staff, back_populates="departments")
	complaints = db.relationship("Complaint", back_populates="department", lazy="dynamic")

	@property
	def staff_count(self) -> int:
		return len(self.staff)

	@property
	def complaint_count(self) -> int:
		return self.complaints.count()

	def summary(self) -> dict:
		return {"id": self.id, "name": self.name}

	def to_dict(self, with_counts: bool = True) -> dict:
		payload = {
			"id": self.id,
			"name": self.name,
			"description": self.description,
			"email": self.email,
			"phone": self.phone,
			"isActive": self.is_active,
			"createdAt": isoformat(self.created_at),
			"updatedAt": isoformat(self.updated_at),
		}
		if with_counts:
			payload["_count"] = {"staff": self.staff_count, "complaints": self.complaint_count}
		return payload


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	title = db.Column(db.String(255), nullable=False)
	details = db.Column(db.Text, nullable=False)
	category = db.Column(db.String(20), nullable=False, index=True)
	priority = db.Column(db.String(10), nullable=False, default="MEDIUM", index=True)
	status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
	location = db.Column(db.String(255), nullable=True)
	latitude = db.Column(db.Float, nullable=True)
	longitude = db.Column(db.Float, nullable=True)
	photo_url = db.Column(db.String(1024), nullable=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
	assigned_to_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	resolved_at = db.Column(db.DateTime, nullable=True, index=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)
	deleted_at = db.Column(db.DateTime, nullable=True, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_check("category", COMPLAINT_CATEGORIES), name="ck_complaint_category_valid"),
		db.CheckConstraint(_in_check("priority", COMPLAINT_PRIORITIES), name="ck_complaint_priority_valid"),
		db.CheckConstraint(_in_check("status", COMPLAINT_STATUSES), name="ck_complaint_status_valid"),
		db.Index("ix_complaints_status_created", "status", "created_at"),
	)

	reporter = db.relationship("User", back_populates="complaints", foreign_keys=[user_id])
	assignee = db.relationship("User", back_populates="assigned_complaints", foreign_keys=[assigned_to_id])
	department = db.relationship("Department", back_populates="complaints")
	comments = db.relationship(
		"Comment",
		back_populates="complaint",
		order_by="Comment.created_at",
		cascade="all, delete-orphan",
		lazy="dynamic",
	)
	activities = db.relationship(
		"ComplaintActivity",
		back_populates="complaint",
		order_by="ComplaintActivity.id",
		cascade="all, delete-orphan",
		lazy="dynamic",
	)

	@property
	def is_deleted(self) -> bool:
		return self.deleted_at is not None

	@staticmethod
	def active_query():
		"""Default listing query: soft-deleted complaints never appear."""
		return Complaint.query.filter(Complaint.deleted_at.is_(None))

	def summary(self) -> dict:
		return {"id": self.id, "title": self.title}

	def to_dict(self, include_counts: bool = False) -> dict:
		payload = {
			"id": self.id,
			"title": self.title,
			"details": self.details,
			"category": self.category,
			"priority": self.priority,
			"status": self.status,
			"location": self.location,
			"latitude": self.latitude,
			"longitude": self.longitude,
			"photoUrl": self.photo_url,
			"userId": self.user_id,
			"departmentId": self.department_id,
			"assignedToId": self.assigned_to_id,
			"user": self.reporter.summary() if self.reporter else None,
			"department": self.department.summary() if self.department else None,
			"assignedTo": self.assignee.summary() if self.assignee else None,
			"resolvedAt": isoformat(self.resolved_at),
			"createdAt": isoformat(self.created_at),
			"updatedAt": isoformat(self.updated_at),
		}
		if include_counts:
			payload["_count"] = {
				"comments": self.comments.count(),
				"activities": self.activities.count(),
			}
		return payload


class Comment(db.Model):
	__tablename__ = "comments"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	author_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	content = db.Column(db.Text, nullable=False)
	is_internal = db.Column(db.Boolean, default=False, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

	__table_args__ = (
		db.Index("ix_comments_complaint_created", "complaint_id", "created_at"),
	)

	complaint = db.relationship("Complaint", back_populates="comments")
	author = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"complaintId": self.complaint_id,
			"content": self.content,
			"isInternal": self.is_internal,
			"author": {"id": self.author.id, "name": self.author.name, "role": self.author.role} if self.author else None,
			"createdAt": isoformat(self.created_at),
		}


class ComplaintActivity(db.Model):
	"""Append-only audit entry; rows are never updated or deleted by the service."""

	__tablename__ = "complaint_activities"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	action = db.Column(db.String(30), nullable=False, index=True)
	old_value = db.Column(db.String(255), nullable=True)
	new_value = db.Column(db.String(255), nullable=True)
	comment = db.Column(db.String(500), nullable=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_check("action", ACTIVITY_ACTIONS), name="ck_activity_action_valid"),
		db.Index("ix_activity_complaint_created", "complaint_id", "created_at"),
	)

	complaint = db.relationship("Complaint", back_populates="activities")
	actor = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"complaintId": self.complaint_id,
			"userId": self.user_id,
			"user": self.actor.summary() if self.actor else None,
			"action": self.action,
			"oldValue": self.old_value,
			"newValue": self.new_value,
			"comment": self.comment,
			"createdAt": isoformat(self.created_at),
		}


class Notification(db.Model):
	__tablename__ = "notifications"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=True, index=True)
	title = db.Column(db.String(255), nullable=False)
	message = db.Column(db.String(1000), nullable=False)
	type = db.Column(db.String(30), nullable=False, index=True)
	is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_check("type", NOTIFICATION_TYPES), name="ck_notification_type_valid"),
		db.Index("ix_notifications_inbox", "user_id", "is_read", "created_at"),
	)

	recipient = db.relationship("User", back_populates="notifications")
	complaint = db.relationship("Complaint")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"userId": self.user_id,
			"complaintId": self.complaint_id,
			"complaint": self.complaint.summary() if self.complaint else None,
			"title": self.title,
			"message": self.message,
			"type": self.type,
			"isRead": self.is_read,
			"createdAt": isoformat(self.created_at),
		}


def count_by(column, query) -> dict[str, int]:
	"""Group an entity query by one column and return {value: count}."""
	rows = query.with_entities(column, func.count()).group_by(column).all()
	return {value: total for value, total in rows}
