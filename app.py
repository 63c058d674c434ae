"""Flask application factory for the municipal complaint desk API."""
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from extensions import csrf, db, login_manager, migrate
from utils.errors import ComplaintDeskError
from utils.logger import assign_request_id, init_logging
from utils.security import apply_security_headers


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ComplaintDeskError)
    def service_error(error: ComplaintDeskError):
        if error.status_code >= 500:
            app.logger.error(
                "Service error",
                extra={"path": request.path, "method": request.method, "error": error.message},
            )
        else:
            app.logger.warning(
                "%s %s",
                error.status_code,
                error.message,
                extra={"path": request.path, "method": request.method},
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        app.logger.warning(
            "%s %s", error.code, error.name, extra={"path": request.path, "method": request.method}
        )
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        return jsonify({"error": "Internal server error"}), 500


def ensure_default_admin(app: Flask) -> None:
    """Create or repair the bootstrap administrator configured via environment."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()
    if admin_user:
        if admin_user.role != "ADMIN" or not admin_user.is_active:
            admin_user.role = "ADMIN"
            admin_user.is_active = True
            db.session.commit()
        return

    admin_user = User(
        name=app.config.get("DEFAULT_ADMIN_NAME") or "System Administrator",
        email=admin_email,
        role="ADMIN",
        is_active=True,
    )
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default administrator created", extra={"email": admin_email})


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
            # Startup fails loudly later on the first real connection.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None, test_config: Optional[dict] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import CONFIG_MAP, ProductionConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_class = CONFIG_MAP.get(config_key, ProductionConfig)
    app.config.from_object(config_class())
    if test_config:
        app.config.update(test_config)
    else:
        app.config.from_pyfile("config.py", silent=True)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    logger = init_logging(app)
    app.logger = logger

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
        return user if user and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    from routes import auth_bp, complaints_bp, departments_bp, main_bp, notifications_bp, staff_bp, users_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(complaints_bp, url_prefix="/api/complaints")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(departments_bp, url_prefix="/api/departments")
    app.register_blueprint(staff_bp, url_prefix="/api/staff")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    # JSON endpoints authenticate by session cookie; forms here carry no CSRF token.
    for blueprint in (auth_bp, complaints_bp, notifications_bp, departments_bp, staff_bp, users_bp):
        csrf.exempt(blueprint)

    register_error_handlers(app)

    @app.before_request
    def _before_request() -> None:
        assign_request_id()

    @app.after_request
    def _after_request(response):
        response.headers.setdefault("X-Request-ID", g.get("request_id", ""))
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    with app.app_context():
        db.create_all()
        ensure_default_admin(app)

    return app
