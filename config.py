"""Environment-aware configuration for the complaint desk."""
import os
from datetime import timedelta


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    def __init__(self) -> None:
        # Local dev defaults: SQLite db and a non-empty secret. Override via env for production.
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        if db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'complaints.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
        }
        self.SESSION_COOKIE_HTTPONLY = True
        self.REMEMBER_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.PERMANENT_SESSION_LIFETIME = timedelta(days=14)
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True

        self.MAIL_SERVER = os.getenv("MAIL_SERVER", "")
        self.MAIL_PORT = int(os.getenv("MAIL_PORT", 465))
        self.MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
        self.MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
        self.MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "false")
        self.MAIL_USE_SSL = _env_flag("MAIL_USE_SSL", "true")
        self.MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "Complaint Desk <noreply@localhost>")
        self.MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND", "false")
        self.PUBLIC_TRACK_URL = os.getenv("PUBLIC_TRACK_URL", "")

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))

        # Bootstrap super admin; skipped when either value is empty.
        self.DEFAULT_SUPER_ADMIN_EMAIL = os.getenv("DEFAULT_SUPER_ADMIN_EMAIL", "")
        self.DEFAULT_SUPER_ADMIN_PASSWORD = os.getenv("DEFAULT_SUPER_ADMIN_PASSWORD", "")
        self.STUDENT_EMAIL_DOMAIN = os.getenv("STUDENT_EMAIL_DOMAIN", "liceo.edu.ph").lower()

        self.ATTACHMENT_UPLOAD_FOLDER = os.getenv(
            "ATTACHMENT_UPLOAD_FOLDER",
            os.path.join(os.getcwd(), "instance", "attachments"),
        )
        self.MAX_ATTACHMENT_BYTES = int(os.getenv("MAX_ATTACHMENT_BYTES", 5 * 1024 * 1024))
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 8 * 1024 * 1024))

        self.REFERENCE_PREFIX = os.getenv("REFERENCE_PREFIX", "LDCU").upper()
        self.REFERENCE_MAX_ATTEMPTS = int(os.getenv("REFERENCE_MAX_ATTEMPTS", 5))
        self.RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", "true")
        self.RATE_LIMIT_TIMEZONE = os.getenv("RATE_LIMIT_TIMEZONE", "Asia/Manila")
        self.TRUST_FORWARDED_FOR = _env_flag("TRUST_FORWARDED_FOR", "false")
        self.VERIFICATION_WINDOW_DAYS = int(os.getenv("VERIFICATION_WINDOW_DAYS", 7))
        self.COMPLAINTS_PER_PAGE = int(os.getenv("COMPLAINTS_PER_PAGE", 20))


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False
        self.MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND", "true")


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.REMEMBER_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite://")
        # SQLite in-memory uses a static pool; QueuePool sizing does not apply.
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
        self.SESSION_COOKIE_SECURE = False
        self.MAIL_SUPPRESS_SEND = True
        self.DEFAULT_SUPER_ADMIN_EMAIL = ""
        self.DEFAULT_SUPER_ADMIN_PASSWORD = ""
