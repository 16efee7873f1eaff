"""Flask application factory for the RentCycle billing service."""
import logging
import os
from pathlib import Path

from flask import Flask, request
from flask_limiter.errors import RateLimitExceeded
from sqlalchemy.engine.url import make_url
from werkzeug.exceptions import HTTPException

from .cli import register_cli
from .config import DevelopmentConfig, ProductionConfig, TestingConfig
from .extensions import db, init_db
from .routes.cron import cron_bp
from .routes.main import main_bp
from .utils.api_response import ApiError, ErrorCodes, api_error, code_for_status
from .utils.rate_limit import limiter, retry_after_seconds

CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def create_app(config_object=None):
    """Build a configured app; ``config_object`` overrides the ``APP_ENV`` choice."""
    app = Flask(__name__, instance_relative_config=True)
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)

    _load_config(app, config_object)
    _configure_logging(app)
    _register_extensions(app)
    _register_blueprints(app)
    _register_shellcontext(app)
    _register_response_headers(app)
    _register_error_handlers(app)
    register_cli(app)
    _create_schema(app)

    return app


def _load_config(app, config_object=None):
    if config_object is None:
        env = (os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV") or "development").lower()
        config_object = CONFIGS.get(env, DevelopmentConfig)
    app.config.from_object(config_object)
    # e.g. RENTCYCLE_CRON_RATE_LIMIT="5 per minute"
    app.config.from_prefixed_env("RENTCYCLE")


def _configure_logging(app):
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)


def _register_extensions(app):
    init_db(app)
    limiter.init_app(app)
    # Registers the payment -> bill reconciliation session hooks
    from .services import bill_reconciliation  # noqa: F401


def _register_blueprints(app):
    for blueprint in (main_bp, cron_bp):
        app.register_blueprint(blueprint)


def _register_shellcontext(app):
    @app.shell_context_processor
    def billing_shell_context():
        from . import models  # noqa: WPS433

        context = {name: getattr(models, name) for name in models.__all__}
        context["db"] = db
        return context


def _create_schema(app):
    url = make_url(app.config["SQLALCHEMY_DATABASE_URI"])
    with app.app_context():
        from . import models  # noqa: F401,WPS433

        if url.get_backend_name() == "sqlite" and url.database:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            app.logger.debug("Using SQLite database at %s", url.database)
        db.create_all()


def _register_response_headers(app):
    @app.after_request
    def add_api_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        # Billing payloads are never cacheable
        response.headers.setdefault("Cache-Control", "no-store")
        if app.config.get("ENV") == "production":
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
        return response


def _register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _render_api_error(error: ApiError):
        return api_error(error.code, error.message, details=error.details, status=error.status, headers=error.headers)

    @app.errorhandler(RateLimitExceeded)
    def _render_rate_limited(error: RateLimitExceeded):
        app.logger.warning("Rate limit %s exceeded on %s", error.description, request.path)
        return api_error(
            ErrorCodes.TOO_MANY_REQUESTS,
            "Rate limit exceeded",
            details={"retryAfter": retry_after_seconds()},
        )

    @app.errorhandler(HTTPException)
    def _render_http_error(error: HTTPException):
        status_code = error.code or 500
        return api_error(code_for_status(status_code), error.description or error.name, status=status_code)

    @app.errorhandler(Exception)
    def _render_unhandled(error: Exception):
        app.logger.exception("Unhandled exception on %s %s", request.method, request.path, exc_info=error)
        return api_error(ErrorCodes.INTERNAL_ERROR, "Internal server error")
