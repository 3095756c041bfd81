"""Flask application factory for the campus complaint desk."""
import os
from typing import Optional

import click
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from extensions import csrf, db, migrate, login_manager
from utils.errors import AuthenticationError, ComplaintDeskError
from utils.logger import init_logging
from utils.security import apply_security_headers


def _error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    return {"error": {"code": code, "message": message, "details": details or {}}}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ComplaintDeskError)
    def complaint_desk_error(error: ComplaintDeskError):
        app.logger.warning(
            "Request rejected",
            extra={"path": request.path, "method": request.method, "error_code": error.error_code, "error": error.message},
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        app.logger.warning("CSRF validation failed", extra={"path": request.path})
        return jsonify(_error_body("CSRF_FAILED", error.description)), 400

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        if error.code == 404:
            app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        code = (error.name or "HTTP_ERROR").upper().replace(" ", "_")
        return jsonify(_error_body(code, error.description or error.name)), error.code

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        db.session.rollback()
        return jsonify(_error_body("INTERNAL_ERROR", "An unexpected error occurred.")), 500


def ensure_super_admin(app: Flask) -> None:
    """Create or reactivate the bootstrap super admin when credentials are configured."""
    from models import User  # Local import to avoid circular dependency

    email = (app.config.get("DEFAULT_SUPER_ADMIN_EMAIL") or "").lower().strip()
    password = app.config.get("DEFAULT_SUPER_ADMIN_PASSWORD") or ""
    if not email or not password:
        return

    user = User.query.filter_by(email=email).first()
    if user:
        if user.role != "super_admin" or not user.is_active:
            user.role = "super_admin"
            user.department = None
            user.is_active = True
            db.session.commit()
        return

    user = User(full_name="System Super Administrator", email=email, role="super_admin", is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    app.logger.info("Bootstrap super admin created", extra={"user_id": user.id})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # Startup fails loudly later if the database really is unreachable.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None, overrides: Optional[dict] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    # Optional instance-specific overrides
    app.config.from_pyfile("config.py", silent=True)
    if overrides:
        app.config.update(overrides)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config["ATTACHMENT_UPLOAD_FOLDER"], exist_ok=True)

    init_logging(app)

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        user = db.session.get(User, str(user_id))
        # Deactivated accounts lose their session on the next request.
        return user if user and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        error = AuthenticationError("Please sign in to continue.")
        return jsonify(error.to_dict()), error.http_status

    from routes import auth_bp, complaints_bp, main_bp, staff_bp, superadmin_bp
    from utils.auto_close_agent import run_auto_close_cycle

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(complaints_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(superadmin_bp)

    @app.cli.command("sweep-resolved")
    def sweep_resolved():
        """Close resolved complaints whose verification window lapsed (schedule this via cron)."""
        closed = run_auto_close_cycle(app)
        click.echo(f"Closed {closed} complaint(s).")

    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_super_admin(app)

    return app
