"""Staff account administration."""
from flask import Blueprint, current_app, jsonify, request
from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from extensions import db
from models import USER_ROLES, Department, User
from utils.accounts import remove_account
from utils.decorators import roles_required
from utils.errors import Conflict, Forbidden, NotFound, ValidationFailed, first_form_error
from utils.identity import acting_user
from utils.security import clean_text, json_form_data, password_meets_policy
from utils.transactions import atomic

staff_bp = Blueprint("staff", __name__)


class StaffForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[DataRequired(), Length(min=2, max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12)])


class StaffUpdateForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[Optional(), Length(min=2, max=150)])
    password = PasswordField("Password", validators=[Optional(), Length(min=12)])
    role = StringField("Role", validators=[Optional()])


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def _departments_from(payload: dict) -> list[Department]:
    raw = payload.get("departmentIds") or []
    if not isinstance(raw, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in raw):
        raise ValidationFailed(
            "departmentIds must be a list of department ids",
            fields={"departmentIds": ["Must be a list of integers"]},
        )
    wanted = set(raw)
    if not wanted:
        return []
    departments = Department.query.filter(Department.id.in_(wanted)).order_by(Department.name).all()
    missing = wanted - {d.id for d in departments}
    if missing:
        raise ValidationFailed(f"Department {min(missing)} does not exist")
    return departments


def _staff_or_404(user_id: str) -> User:
    member = db.session.get(User, user_id)
    if not member or member.role == "USER":
        raise NotFound("Staff member not found")
    return member


def _checked_password(password: str) -> str:
    ok, reason = password_meets_policy(password)
    if not ok:
        raise ValidationFailed(reason, fields={"password": [reason]})
    return password


@staff_bp.route("", methods=["GET"])
@roles_required("ADMIN")
def list_staff():
    members = User.query.filter(User.role == "STAFF").order_by(User.name.asc()).all()
    return jsonify([m.to_dict() for m in members])


@staff_bp.route("", methods=["POST"])
@roles_required("ADMIN")
def create_staff():
    payload = _json_payload()
    form = StaffForm(formdata=json_form_data(payload))
    if not form.validate():
        raise ValidationFailed(first_form_error(form.errors), fields=form.errors)

    email = form.email.data.lower().strip()
    if User.query.filter_by(email=email).first():
        raise Conflict("An account with this email already exists.")

    member = User(name=clean_text(form.name.data), email=email, role="STAFF", is_active=True)
    member.set_password(_checked_password(form.password.data))
    member.departments = _departments_from(payload)

    with atomic("create_staff", email=email):
        db.session.add(member)

    current_app.logger.info("staff_created", extra={"staff_id": member.id})
    return jsonify(member.to_dict()), 201


@staff_bp.route("/<string:user_id>", methods=["PATCH"])
@roles_required("ADMIN")
def update_staff(user_id):
    actor = acting_user()
    payload = _json_payload()
    member = db.session.get(User, user_id)
    if not member:
        raise NotFound("User not found")

    form = StaffUpdateForm(formdata=json_form_data(payload))
    if not form.validate():
        raise ValidationFailed(first_form_error(form.errors), fields=form.errors)

    password = None
    if "password" in payload and form.password.data:
        password = _checked_password(form.password.data)
    role = None
    if "role" in payload:
        role = (form.role.data or "").strip().upper()
        if role not in USER_ROLES:
            raise ValidationFailed(f"Invalid role: {form.role.data}", fields={"role": ["Unknown role"]})
        if member.id == actor.id and role != member.role:
            raise Forbidden("You cannot change your own role")
    is_active = None
    if "isActive" in payload:
        is_active = payload["isActive"]
        if not isinstance(is_active, bool):
            raise ValidationFailed("isActive must be a boolean", fields={"isActive": ["Must be true or false"]})
        if member.id == actor.id and not is_active:
            raise Forbidden("You cannot deactivate your own account")
    departments = _departments_from(payload) if "departmentIds" in payload else None

    if "name" in payload and form.name.data:
        member.name = clean_text(form.name.data)
    if password:
        member.set_password(password)
    if role:
        member.role = role
    if is_active is not None:
        member.is_active = is_active
    if departments is not None:
        member.departments = departments

    with atomic("update_staff", staff_id=user_id):
        db.session.add(member)

    current_app.logger.info("staff_updated", extra={"staff_id": user_id, "fields": sorted(payload)})
    return jsonify(member.to_dict())


@staff_bp.route("/<string:user_id>", methods=["GET"])
@roles_required("ADMIN")
def staff_detail(user_id):
    return jsonify(_staff_or_404(user_id).to_dict(with_counts=True))


@staff_bp.route("/<string:user_id>", methods=["DELETE"])
@roles_required("ADMIN")
def delete_staff(user_id):
    remove_account(acting_user(), _staff_or_404(user_id))
    return jsonify({"success": True, "message": "Staff member deleted successfully"})
