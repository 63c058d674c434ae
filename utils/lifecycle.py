"""Complaint lifecycle: intake, field transitions and their audit/notification side effects.

A transition is computed as a plan first (field changes, activity rows and
notification drafts) and only then written, so that validation and
authorization failures never leave partial state behind. The plan is applied
inside one :func:`utils.transactions.atomic` block.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import (
    COMPLAINT_CATEGORIES,
    COMPLAINT_PRIORITIES,
    COMPLAINT_STATUSES,
    Complaint,
    ComplaintActivity,
    Department,
    User,
    utcnow,
)
from utils.access_policy import can_delete, can_mutate, can_see_internal, can_view, enforce
from utils.errors import Forbidden, ValidationFailed
from utils.identity import ActingUser
from utils.notifications import NotificationDraft, fan_out
from utils.security import clean_text
from utils.transactions import atomic

# JSON key -> model attribute
PATCH_FIELDS: Dict[str, str] = {
    "status": "status",
    "assignedToId": "assigned_to_id",
    "departmentId": "department_id",
    "priority": "priority",
}

FIELD_LABELS: Dict[str, str] = {
    "status": "status",
    "assigned_to_id": "assignment",
    "department_id": "department",
    "priority": "priority",
}

STATUS_LABELS: Dict[str, str] = {
    "PENDING": "pending",
    "IN_PROGRESS": "in progress",
    "RESOLVED": "resolved",
}

TITLE_LENGTH = (5, 255)
DETAILS_LENGTH = (20, 5000)


@dataclass
class ComplaintPatch:
    """Validated patch keyed by model attribute; absent keys are not in ``values``."""

    values: Dict[str, Any] = field(default_factory=dict)

    def __contains__(self, attr: str) -> bool:
        return attr in self.values

    def __getitem__(self, attr: str) -> Any:
        return self.values[attr]

    @property
    def fields(self) -> List[str]:
        return list(self.values)


@dataclass
class TransitionPlan:
    changes: Dict[str, Any] = field(default_factory=dict)
    activities: List[ComplaintActivity] = field(default_factory=list)
    drafts: List[NotificationDraft] = field(default_factory=list)
    stamp_resolved: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.changes


def _enum_value(raw: Any, allowed: tuple[str, ...], key: str) -> str:
    value = raw.strip().upper() if isinstance(raw, str) else None
    if value not in allowed:
        raise ValidationFailed(f"Invalid {key}", fields={key: [f"Must be one of: {', '.join(allowed)}"]})
    return value


def _optional_id(raw: Any, key: str) -> Optional[str]:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ValidationFailed(f"Invalid {key}", fields={key: ["Must be a user id or null"]})
    return raw.strip()


def _optional_int(raw: Any, key: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool) or isinstance(raw, float):
        raise ValidationFailed(f"Invalid {key}", fields={key: ["Must be an integer id or null"]})
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {key}", fields={key: ["Must be an integer id or null"]})
    if value <= 0:
        raise ValidationFailed(f"Invalid {key}", fields={key: ["Must be a positive id"]})
    return value


def parse_patch(payload: Any) -> ComplaintPatch:
    if not isinstance(payload, Mapping):
        raise ValidationFailed("Request body must be a JSON object")

    values: Dict[str, Any] = {}
    if "status" in payload:
        values["status"] = _enum_value(payload["status"], COMPLAINT_STATUSES, "status")
    if "priority" in payload:
        values["priority"] = _enum_value(payload["priority"], COMPLAINT_PRIORITIES, "priority")
    if "assignedToId" in payload:
        values["assigned_to_id"] = _optional_id(payload["assignedToId"], "assignedToId")
    if "departmentId" in payload:
        values["department_id"] = _optional_int(payload["departmentId"], "departmentId")

    if not values:
        raise ValidationFailed(f"Provide at least one of: {', '.join(PATCH_FIELDS)}")
    return ComplaintPatch(values)


def _load_assignee(user_id: Optional[str]) -> Optional[User]:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if not user or user.role != "STAFF" or not user.is_active:
        raise ValidationFailed("Assignee must be an active staff member", fields={"assignedToId": ["Unknown staff member"]})
    return user


def _load_department(department_id: Optional[int]) -> Optional[Department]:
    if department_id is None:
        return None
    department = db.session.get(Department, department_id)
    if not department or not department.is_active:
        raise ValidationFailed("Department must exist and be active", fields={"departmentId": ["Unknown department"]})
    return department


def _activity(actor: ActingUser, complaint: Complaint, action: str, old, new, comment: str) -> ComplaintActivity:
    return ComplaintActivity(
        complaint_id=complaint.id,
        user_id=actor.id,
        action=action,
        old_value=None if old is None else str(old),
        new_value=None if new is None else str(new),
        comment=comment,
    )


def plan_transition(
    actor: ActingUser,
    complaint: Complaint,
    patch: ComplaintPatch,
    assignee: Optional[User] = None,
    department: Optional[Department] = None,
) -> TransitionPlan:
    """Diff the patch against the complaint; only real deltas produce entries."""
    plan = TransitionPlan()

    if "status" in patch and patch["status"] != complaint.status:
        old_status, new_status = complaint.status, patch["status"]
        plan.changes["status"] = new_status
        plan.activities.append(
            _activity(
                actor,
                complaint,
                "STATUS_CHANGED",
                old_status,
                new_status,
                f"Status changed from {old_status} to {new_status}",
            )
        )
        if new_status == "RESOLVED":
            plan.stamp_resolved = complaint.resolved_at is None
            plan.drafts.append(
                NotificationDraft(
                    recipient_id=complaint.user_id,
                    title="Complaint Resolved",
                    message=f"Your complaint has been resolved: {complaint.title}",
                    type="RESOLVED",
                    complaint_id=complaint.id,
                )
            )
        else:
            plan.drafts.append(
                NotificationDraft(
                    recipient_id=complaint.user_id,
                    title="Status Updated",
                    message=f"Your complaint is now {STATUS_LABELS[new_status]}: {complaint.title}",
                    type="STATUS_UPDATED",
                    complaint_id=complaint.id,
                )
            )

    if "assigned_to_id" in patch and patch["assigned_to_id"] != complaint.assigned_to_id:
        old_id, new_id = complaint.assigned_to_id, patch["assigned_to_id"]
        old_name = complaint.assignee.name if complaint.assignee else old_id
        new_name = assignee.name if assignee else new_id
        plan.changes["assigned_to_id"] = new_id
        if old_id is None:
            action, comment = "ASSIGNED", f"Assigned to {new_name}"
        elif new_id is None:
            action, comment = "REASSIGNED", f"Unassigned from {old_name}"
        else:
            action, comment = "REASSIGNED", f"Reassigned from {old_name} to {new_name}"
        plan.activities.append(_activity(actor, complaint, action, old_id, new_id, comment))
        if new_id is not None:
            plan.drafts.append(
                NotificationDraft(
                    recipient_id=new_id,
                    title="New Assignment",
                    message=f"You have been assigned complaint: {complaint.title}",
                    type="COMPLAINT_ASSIGNED",
                    complaint_id=complaint.id,
                )
            )

    if "priority" in patch and patch["priority"] != complaint.priority:
        old_priority, new_priority = complaint.priority, patch["priority"]
        plan.changes["priority"] = new_priority
        plan.activities.append(
            _activity(
                actor,
                complaint,
                "PRIORITY_CHANGED",
                old_priority,
                new_priority,
                f"Priority changed from {old_priority} to {new_priority}",
            )
        )

    if "department_id" in patch and patch["department_id"] != complaint.department_id:
        old_id, new_id = complaint.department_id, patch["department_id"]
        old_name = complaint.department.name if complaint.department else "none"
        new_name = department.name if department else "none"
        plan.changes["department_id"] = new_id
        plan.activities.append(
            _activity(
                actor,
                complaint,
                "DEPARTMENT_CHANGED",
                old_id,
                new_id,
                f"Department changed from {old_name} to {new_name}",
            )
        )

    return plan


def apply_patch(actor: ActingUser, complaint_id: str, payload: Any) -> Complaint:
    """Validate, authorize and apply a status/assignment/priority/department patch."""
    if not actor.is_privileged:
        current_app.logger.warning(
            "Complaint patch rejected for role",
            extra={"complaint_id": complaint_id, "role": actor.role},
        )
        raise Forbidden("Only staff and administrators can update complaints")

    patch = parse_patch(payload)
    complaint = enforce(actor, db.session.get(Complaint, complaint_id), can_view)
    for attr in patch.fields:
        if not can_mutate(actor, complaint, attr):
            raise Forbidden(f"You are not allowed to change the {FIELD_LABELS[attr]} of this complaint")

    assignee = _load_assignee(patch["assigned_to_id"]) if "assigned_to_id" in patch else None
    department = _load_department(patch["department_id"]) if "department_id" in patch else None

    plan = plan_transition(actor, complaint, patch, assignee=assignee, department=department)
    if plan.is_noop:
        current_app.logger.info(
            "complaint_patch_noop",
            extra={"complaint_id": complaint.id, "fields": patch.fields},
        )
        return complaint

    with atomic("update_complaint", complaint_id=complaint.id):
        for attr, value in plan.changes.items():
            setattr(complaint, attr, value)
        if plan.stamp_resolved:
            complaint.resolved_at = utcnow()
        db.session.add_all(plan.activities)
        notifications = fan_out(actor, plan.drafts)

    current_app.logger.info(
        "complaint_patched",
        extra={
            "complaint_id": complaint.id,
            "changes": sorted(plan.changes),
            "activities": len(plan.activities),
            "notifications": len(notifications),
        },
    )
    return complaint


def _validated_intake(data: Mapping) -> Dict[str, Any]:
    errors: Dict[str, List[str]] = {}
    cleaned: Dict[str, Any] = {}

    title = clean_text(data.get("title"))
    if not TITLE_LENGTH[0] <= len(title) <= TITLE_LENGTH[1]:
        errors["title"] = [f"Title must be between {TITLE_LENGTH[0]} and {TITLE_LENGTH[1]} characters"]
    cleaned["title"] = title

    details = clean_text(data.get("details"))
    if not DETAILS_LENGTH[0] <= len(details) <= DETAILS_LENGTH[1]:
        errors["details"] = [f"Details must be between {DETAILS_LENGTH[0]} and {DETAILS_LENGTH[1]} characters"]
    cleaned["details"] = details

    category = data.get("category")
    category = category.strip().upper() if isinstance(category, str) else None
    if category not in COMPLAINT_CATEGORIES:
        errors["category"] = [f"Must be one of: {', '.join(COMPLAINT_CATEGORIES)}"]
    cleaned["category"] = category

    priority = data.get("priority") or "MEDIUM"
    priority = priority.strip().upper() if isinstance(priority, str) else None
    if priority not in COMPLAINT_PRIORITIES:
        errors["priority"] = [f"Must be one of: {', '.join(COMPLAINT_PRIORITIES)}"]
    cleaned["priority"] = priority

    location = clean_text(data.get("location")) or None
    if location and len(location) > 255:
        errors["location"] = ["Location must be at most 255 characters"]
    cleaned["location"] = location

    for key, bound in (("latitude", 90.0), ("longitude", 180.0)):
        raw = data.get(key)
        if raw is None or raw == "":
            cleaned[key] = None
            continue
        try:
            if isinstance(raw, bool):
                raise ValueError
            value = float(raw)
        except (TypeError, ValueError):
            errors[key] = ["Must be a number"]
            continue
        if not -bound <= value <= bound:
            errors[key] = [f"Must be between {-bound:g} and {bound:g}"]
        cleaned[key] = value
    if (cleaned.get("latitude") is None) != (cleaned.get("longitude") is None) and not (
        "latitude" in errors or "longitude" in errors
    ):
        errors["coordinates"] = ["Latitude and longitude must be supplied together"]

    photo_url = data.get("photoUrl")
    if photo_url in (None, ""):
        cleaned["photo_url"] = None
    elif not isinstance(photo_url, str) or len(photo_url) > 1024:
        errors["photoUrl"] = ["Must be a URL of at most 1024 characters"]
    else:
        cleaned["photo_url"] = photo_url.strip()

    if errors:
        raise ValidationFailed("Invalid complaint", fields=errors)
    return cleaned


def create_complaint(actor: ActingUser, data: Any) -> Complaint:
    if not isinstance(data, Mapping):
        raise ValidationFailed("Request body must be a JSON object")
    cleaned = _validated_intake(data)

    with atomic("create_complaint", reporter_id=actor.id):
        complaint = Complaint(user_id=actor.id, status="PENDING", **cleaned)
        db.session.add(complaint)
        db.session.flush()
        db.session.add(_activity(actor, complaint, "NEW_COMPLAINT", None, complaint.status, "Complaint submitted"))

    current_app.logger.info(
        "complaint_created",
        extra={"complaint_id": complaint.id, "category": complaint.category, "priority": complaint.priority},
    )
    return complaint


def get_complaint(actor: ActingUser, complaint_id: str) -> Complaint:
    return enforce(actor, db.session.get(Complaint, complaint_id), can_view)


def complaint_activity(actor: ActingUser, complaint_id: str) -> List[ComplaintActivity]:
    complaint = get_complaint(actor, complaint_id)
    query = ComplaintActivity.query.filter_by(complaint_id=complaint.id)
    if not can_see_internal(actor, complaint):
        query = query.filter(
            or_(ComplaintActivity.action != "COMMENT_ADDED", ComplaintActivity.new_value != "internal")
        )
    return query.order_by(ComplaintActivity.created_at.asc(), ComplaintActivity.id.asc()).all()


def soft_delete_complaint(actor: ActingUser, complaint_id: str) -> Complaint:
    complaint = enforce(
        actor,
        db.session.get(Complaint, complaint_id),
        can_delete,
        message="Only administrators can delete complaints",
    )
    with atomic("delete_complaint", complaint_id=complaint.id):
        complaint.deleted_at = utcnow()
    current_app.logger.info("complaint_soft_deleted", extra={"complaint_id": complaint.id})
    return complaint
