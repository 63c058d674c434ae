"""Blueprint registration, liveness and dashboard routes."""
from flask import Blueprint, jsonify
from flask_login import login_required
from sqlalchemy import text

from extensions import db
from utils.analytics import dashboard_statistics
from utils.identity import acting_user
from .auth import auth_bp
from .complaints import complaints_bp
from .departments import departments_bp
from .notifications import notifications_bp
from .staff import staff_bp
from .users import users_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"})


@main_bp.route("/api/dashboard/stats", methods=["GET"])
@login_required
def dashboard_stats():
    return jsonify(dashboard_statistics(acting_user()))


__all__ = ["main_bp", "auth_bp", "complaints_bp", "departments_bp", "notifications_bp", "staff_bp", "users_bp"]
