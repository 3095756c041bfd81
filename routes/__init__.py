"""Blueprint registration and service-level routes."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import COMPLAINT_CATEGORIES, DEPARTMENTS
from .auth import auth_bp
from .complaints import complaints_bp
from .staff import staff_bp
from .superadmin import superadmin_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return jsonify(
        {
            "service": "campus-complaint-desk",
            "categories": list(COMPLAINT_CATEGORIES),
            "departments": DEPARTMENTS,
            "verification_window_days": current_app.config.get("VERIFICATION_WINDOW_DAYS", 7),
        }
    )


@main_bp.route("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check failed")
        return jsonify({"status": "degraded", "database": "unavailable"}), 503
    return jsonify({"status": "ok", "database": "ok"})


__all__ = ["main_bp", "auth_bp", "complaints_bp", "staff_bp", "superadmin_bp"]
