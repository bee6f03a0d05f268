"""
Membership Lifecycle Platform
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
    app = create_app("testing", {"SQLALCHEMY_DATABASE_URI": "sqlite:///alloc.db"})
"""

import atexit
import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite: FK enforcement + explicit BEGIN IMMEDIATE (global engine events) ──
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _configure_sqlite_connection(dbapi_conn, connection_record):
    """Enable foreign keys and hand transaction control to SQLAlchemy."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # pysqlite would otherwise BEGIN lazily (DEFERRED) on first write
        dbapi_conn.isolation_level = None


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin_immediate(conn):
    """Take the write lock at BEGIN so concurrent allocations serialize."""
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN IMMEDIATE")


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-route limits only
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
)


def _register_cli(app):
    @app.cli.command("assign-member-numbers")
    @click.option("--apply", "apply_changes", is_flag=True, help="Write numbers (default: dry-run).")
    def assign_member_numbers_cmd(apply_changes):
        """Allocate member numbers for members without one, oldest enrollment first."""
        summary = app.extensions["lifecycle"].allocator.backfill(apply=apply_changes)
        for row in summary["plan"]:
            click.echo(f"[{'ASSIGN' if apply_changes else 'PLAN'}] member={row['member_id']} -> {row['member_number']}")
        click.echo(
            f"[SUMMARY] mode={summary['mode']} candidates={summary['candidates']} "
            f"assigned={summary['assigned']} errors={summary['errors']}"
        )
        if summary["errors"]:
            raise SystemExit(1)

    @app.cli.command("apply-demotions")
    @click.option("--start", required=True, type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.option("--end", required=True, type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.option("--operator", default="cli")
    def apply_demotions_cmd(start, end, operator):
        """Apply DEMOTED decisions for meetings dated in [start, end)."""
        summary = app.extensions["lifecycle"].demotion.apply_demotions(start.date(), end.date(), operator=operator)
        for member_id in summary["demoted"]:
            click.echo(f"[DEMOTE] member={member_id}")
        click.echo(f"[SUMMARY] demoted={len(summary['demoted'])} skipped={len(summary['skipped'])}")


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides:   Optional mapping applied on top of the config class.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    if config_name == "production":
        config_cls()  # refuses to start without DATABASE_URL / SECRET_KEY
    app.config.from_object(config_cls)
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Lifecycle services ───────────────────────────────────────────────
    from app.services import build_services
    app.extensions["lifecycle"] = build_services(db, app.config)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import audit as _audit_models           # noqa: F401
    from app.models import meeting as _meeting_models       # noqa: F401
    from app.models import member as _member_models         # noqa: F401
    from app.models import promotion as _promotion_models   # noqa: F401

    # ── Auto-create tables (dev/test; production runs `flask db upgrade`) ──
    if config_name != "production":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.meeting_bp import meeting_bp
    from app.blueprints.member_bp import member_bp
    from app.blueprints.promotion_bp import promotion_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(member_bp)
    app.register_blueprint(promotion_bp)
    app.register_blueprint(meeting_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Engine shutdown ──────────────────────────────────────────────────
    if not app.testing:
        atexit.register(_dispose_engine, app)

    return app


def _dispose_engine(app):
    with app.app_context():
        db.engine.dispose()
