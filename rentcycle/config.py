"""Environment-driven settings for the billing service and its cron endpoints."""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent
INSTANCE_DIR = PROJECT_ROOT / "instance"
DEFAULT_DB_PATH = INSTANCE_DIR / "rentcycle.sqlite"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or f"sqlite:///{DEFAULT_DB_PATH}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_NAME = "RentCycle"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Shared secret presented by the external scheduler as a bearer token
    CRON_SECRET = os.environ.get("CRON_SECRET")
    CRON_RATE_LIMIT = os.environ.get("CRON_RATE_LIMIT", "2 per minute")

    # Flask-Limiter; a shared backend such as redis:// is needed across workers
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_STRATEGY = "fixed-window"
    RATELIMIT_HEADERS_ENABLED = True

    BILL_NUMBER_PREFIX = os.environ.get("BILL_NUMBER_PREFIX", "INV")
    AUTO_BILLING_DEFAULTS = {
        "enabled": False,
        "billing_day": 1,
        "due_day_offset": 10,
        "include_pending_charges": True,
        "auto_send_notification": True,
        "last_generated_month": None,
    }


class DevelopmentConfig(Config):
    DEBUG = True
    ENV = "development"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    DEBUG = False
    ENV = "production"


class TestingConfig(Config):
    TESTING = True
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CRON_SECRET = "test-cron-secret"
