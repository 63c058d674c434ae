"""Per-user notification inbox."""
from flask import Blueprint, jsonify
from flask_login import login_required

from utils.identity import acting_user
from utils.notifications import (
    delete_all_notifications,
    delete_notification,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("", methods=["GET"])
@login_required
def inbox():
    return jsonify([n.to_dict() for n in list_notifications(acting_user())])


@notifications_bp.route("/unread-count", methods=["GET"])
@login_required
def inbox_unread_count():
    return jsonify({"count": unread_count(acting_user())})


@notifications_bp.route("/<string:notification_id>/read", methods=["PATCH"])
@login_required
def read_notification(notification_id):
    notification = mark_read(acting_user(), notification_id)
    return jsonify(notification.to_dict())


@notifications_bp.route("/read-all", methods=["PATCH"])
@login_required
def read_all_notifications():
    updated = mark_all_read(acting_user())
    return jsonify({"success": True, "updated": updated})


@notifications_bp.route("/delete-all", methods=["DELETE"])
@login_required
def remove_all_notifications():
    deleted = delete_all_notifications(acting_user())
    return jsonify({"success": True, "deleted": deleted})


@notifications_bp.route("/<string:notification_id>", methods=["DELETE"])
@login_required
def remove_notification(notification_id):
    delete_notification(acting_user(), notification_id)
    return jsonify({"success": True})
