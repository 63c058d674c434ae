"""Complaint intake, listing, lifecycle updates and comment threads."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from models import COMPLAINT_CATEGORIES, COMPLAINT_PRIORITIES, COMPLAINT_STATUSES, Complaint
from utils.access_policy import visible_complaints
from utils.comments import add_comment, list_comments
from utils.decorators import roles_required
from utils.identity import acting_user
from utils.lifecycle import (
    apply_patch,
    complaint_activity,
    create_complaint,
    get_complaint,
    soft_delete_complaint,
)
from utils.security import sanitize_input

complaints_bp = Blueprint("complaints", __name__)


def _page_args() -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    page = 1 if page < 1 else page

    default_page_size = int(current_app.config.get("COMPLAINTS_PER_PAGE", 20))
    try:
        per_page = int(request.args.get("per_page", default_page_size))
    except (TypeError, ValueError):
        per_page = default_page_size
    return page, max(1, min(per_page, 100))


@complaints_bp.route("", methods=["GET"])
@login_required
def list_complaints():
    actor = acting_user()
    filters = sanitize_input(request.args)
    status_filter = filters.get("status")
    category_filter = filters.get("category")
    priority_filter = filters.get("priority")
    page, per_page = _page_args()

    query = visible_complaints(actor)
    if status_filter in COMPLAINT_STATUSES:
        query = query.filter(Complaint.status == status_filter)
    if category_filter in COMPLAINT_CATEGORIES:
        query = query.filter(Complaint.category == category_filter)
    if priority_filter in COMPLAINT_PRIORITIES:
        query = query.filter(Complaint.priority == priority_filter)

    total = query.count()
    complaints = (
        query.order_by(Complaint.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    current_app.logger.info(
        "complaints_listed",
        extra={
            "count": len(complaints),
            "filters": {"status": status_filter, "category": category_filter, "priority": priority_filter},
        },
    )
    return jsonify(
        {
            "complaints": [c.to_dict() for c in complaints],
            "pagination": {
                "page": page,
                "perPage": per_page,
                "total": total,
                "hasMore": page * per_page < total,
            },
        }
    )


@complaints_bp.route("", methods=["POST"])
@login_required
def submit_complaint():
    complaint = create_complaint(acting_user(), request.get_json(silent=True))
    return jsonify(complaint.to_dict()), 201


@complaints_bp.route("/resolved", methods=["GET"])
@roles_required("ADMIN", "STAFF")
def resolved_complaints():
    actor = acting_user()
    complaints = (
        visible_complaints(actor)
        .filter(Complaint.status == "RESOLVED")
        .order_by(Complaint.resolved_at.desc())
        .all()
    )
    return jsonify([c.to_dict(include_counts=True) for c in complaints])


@complaints_bp.route("/<string:complaint_id>", methods=["GET"])
@login_required
def view_complaint(complaint_id):
    complaint = get_complaint(acting_user(), complaint_id)
    return jsonify(complaint.to_dict(include_counts=True))


@complaints_bp.route("/<string:complaint_id>", methods=["PATCH"])
@login_required
def update_complaint(complaint_id):
    complaint = apply_patch(acting_user(), complaint_id, request.get_json(silent=True))
    return jsonify(complaint.to_dict())


@complaints_bp.route("/<string:complaint_id>", methods=["DELETE"])
@login_required
def delete_complaint(complaint_id):
    soft_delete_complaint(acting_user(), complaint_id)
    return jsonify({"success": True, "message": "Complaint deleted"})


@complaints_bp.route("/<string:complaint_id>/activity", methods=["GET"])
@login_required
def complaint_activity_feed(complaint_id):
    entries = complaint_activity(acting_user(), complaint_id)
    return jsonify([entry.to_dict() for entry in entries])


@complaints_bp.route("/<string:complaint_id>/comments", methods=["GET"])
@login_required
def complaint_comments(complaint_id):
    page = list_comments(
        acting_user(),
        complaint_id,
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify(page.to_dict())


@complaints_bp.route("/<string:complaint_id>/comments", methods=["POST"])
@login_required
def post_comment(complaint_id):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    comment = add_comment(
        acting_user(),
        complaint_id,
        payload.get("content"),
        is_internal=payload.get("isInternal", False),
    )
    return jsonify(comment.to_dict()), 201
