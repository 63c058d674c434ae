"""Department directory and administration."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from flask_wtf import FlaskForm
from sqlalchemy import func
from wtforms import StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from extensions import db
from models import Department
from utils.decorators import roles_required
from utils.errors import Conflict, NotFound, ValidationFailed, first_form_error
from utils.security import clean_text, json_form_data
from utils.transactions import atomic

departments_bp = Blueprint("departments", __name__)


class DepartmentForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[DataRequired(), Length(min=3, max=150)])
    description = StringField("Description", validators=[Optional(), Length(max=500)])
    email = StringField("Email", validators=[Optional(), Email(), Length(max=255)])
    phone = StringField("Phone", validators=[Optional(), Length(max=50)])


class DepartmentUpdateForm(DepartmentForm):
    name = StringField("Name", validators=[Optional(), Length(min=3, max=150)])


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def _is_active_flag(payload: dict):
    value = payload.get("isActive")
    if value is not None and not isinstance(value, bool):
        raise ValidationFailed("isActive must be a boolean", fields={"isActive": ["Must be true or false"]})
    return value


def _department_or_404(department_id: int) -> Department:
    department = db.session.get(Department, department_id)
    if not department:
        raise NotFound("Department not found")
    return department


def _ensure_unique_name(name: str, current: Department | None = None) -> None:
    existing = Department.query.filter(func.lower(Department.name) == name.lower()).first()
    if existing and existing is not current:
        raise Conflict("A department with this name already exists")


@departments_bp.route("", methods=["GET"])
def active_departments():
    departments = Department.query.filter_by(is_active=True).order_by(Department.name.asc()).all()
    return jsonify([d.to_dict(with_counts=False) for d in departments])


@departments_bp.route("/all", methods=["GET"])
@roles_required("ADMIN")
def all_departments():
    departments = Department.query.order_by(Department.name.asc()).all()
    return jsonify([d.to_dict() for d in departments])


@departments_bp.route("/<int:department_id>", methods=["GET"])
@login_required
def department_detail(department_id):
    return jsonify(_department_or_404(department_id).to_dict())


@departments_bp.route("", methods=["POST"])
@roles_required("ADMIN")
def create_department():
    payload = _json_payload()
    form = DepartmentForm(formdata=json_form_data(payload))
    if not form.validate():
        raise ValidationFailed(first_form_error(form.errors), fields=form.errors)
    is_active = _is_active_flag(payload)

    name = clean_text(form.name.data)
    _ensure_unique_name(name)
    department = Department(
        name=name,
        description=clean_text(form.description.data) or None,
        email=(form.email.data or "").strip().lower() or None,
        phone=clean_text(form.phone.data) or None,
        is_active=True if is_active is None else is_active,
    )
    with atomic("create_department", department_name=name):
        db.session.add(department)

    current_app.logger.info("department_created", extra={"department_id": department.id})
    return jsonify(department.to_dict()), 201


@departments_bp.route("/<int:department_id>", methods=["PATCH"])
@roles_required("ADMIN")
def update_department(department_id):
    payload = _json_payload()
    department = _department_or_404(department_id)
    form = DepartmentUpdateForm(formdata=json_form_data(payload))
    if not form.validate():
        raise ValidationFailed(first_form_error(form.errors), fields=form.errors)
    is_active = _is_active_flag(payload)

    if "name" in payload and form.name.data:
        name = clean_text(form.name.data)
        if name != department.name:
            _ensure_unique_name(name, current=department)
        department.name = name
    if "description" in payload:
        department.description = clean_text(form.description.data) or None
    if "email" in payload:
        department.email = (form.email.data or "").strip().lower() or None
    if "phone" in payload:
        department.phone = clean_text(form.phone.data) or None
    if is_active is not None:
        department.is_active = is_active

    with atomic("update_department", department_id=department_id):
        db.session.add(department)

    current_app.logger.info("department_updated", extra={"department_id": department_id, "fields": sorted(payload)})
    return jsonify(department.to_dict())


@departments_bp.route("/<int:department_id>", methods=["DELETE"])
@roles_required("ADMIN")
def delete_department(department_id):
    department = _department_or_404(department_id)
    complaint_count = department.complaint_count
    if complaint_count > 0:
        raise ValidationFailed(
            f"Cannot delete department with {complaint_count} complaint(s). Reassign or resolve them first."
        )
    staff_count = department.staff_count
    if staff_count > 0:
        raise ValidationFailed(f"Cannot delete department with {staff_count} staff member(s). Reassign them first.")

    with atomic("delete_department", department_id=department_id):
        db.session.delete(department)

    current_app.logger.info("department_deleted", extra={"department_id": department_id})
    return jsonify({"success": True, "message": "Department deleted successfully"})
