"""
Membership Lifecycle Platform
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'membership_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Redis (rate-limit storage; memory:// when unset)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # ── Member numbers ───────────────────────────────────────────────────
    # Printed on documents and used for support lookups: changing the prefix
    # or width requires a data migration.
    MEMBER_ID_PREFIX = os.getenv("MEMBER_ID_PREFIX", "UGS")
    MEMBER_ID_WIDTH = int(os.getenv("MEMBER_ID_WIDTH", "7"))
    # Retries on transient serialization failures only
    MEMBER_ID_MAX_RETRIES = int(os.getenv("MEMBER_ID_MAX_RETRIES", "5"))

    # ── Promotion checklist thresholds ───────────────────────────────────
    ASSESSMENT_PASSING_SCORE = int(os.getenv("ASSESSMENT_PASSING_SCORE", "70"))
    COMPLIANCE_PASSING_SCORE = int(os.getenv("COMPLIANCE_PASSING_SCORE", "90"))
    ONBOARDING_VIDEO_THRESHOLD = float(os.getenv("ONBOARDING_VIDEO_THRESHOLD", "0.9"))

    # ── Recurring meeting attendance ─────────────────────────────────────
    MEETING_VIDEO_THRESHOLD = float(os.getenv("MEETING_VIDEO_THRESHOLD", "0.9"))
    EXEMPTION_REASON_MIN_LENGTH = 10
    EXEMPTION_REASON_MAX_LENGTH = 1000
    ATTENDANCE_CODE_RATE_LIMIT = os.getenv("ATTENDANCE_CODE_RATE_LIMIT", "10 per minute")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # SQLite in-memory runs on a StaticPool, which rejects pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
