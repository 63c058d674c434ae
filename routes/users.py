"""Citizen account administration."""
from flask import Blueprint, current_app, jsonify, request

from extensions import db
from models import User
from utils.accounts import remove_account
from utils.decorators import roles_required
from utils.errors import NotFound, ValidationFailed
from utils.identity import acting_user
from utils.transactions import atomic

users_bp = Blueprint("users", __name__)


def _citizen_or_404(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if not user or user.role != "USER":
        raise NotFound("User not found")
    return user


@users_bp.route("/all", methods=["GET"])
@roles_required("ADMIN")
def all_users():
    users = User.query.filter(User.role == "USER").order_by(User.created_at.desc()).all()
    return jsonify([u.to_dict(with_counts=True) for u in users])


@users_bp.route("/<string:user_id>", methods=["PATCH"])
@roles_required("ADMIN")
def set_user_active(user_id):
    payload = request.get_json(silent=True)
    is_active = payload.get("isActive") if isinstance(payload, dict) else None
    if not isinstance(is_active, bool):
        raise ValidationFailed("isActive must be a boolean", fields={"isActive": ["Must be true or false"]})

    user = _citizen_or_404(user_id)
    with atomic("update_user", user_id=user_id):
        user.is_active = is_active

    current_app.logger.info("user_activation_changed", extra={"user_id": user_id, "is_active": is_active})
    return jsonify(user.to_dict(with_counts=True))


@users_bp.route("/<string:user_id>", methods=["DELETE"])
@roles_required("ADMIN")
def delete_user(user_id):
    remove_account(acting_user(), _citizen_or_404(user_id))
    return jsonify({"success": True})
