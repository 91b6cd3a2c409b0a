"""
PMO Platform configuration.

One class per environment; ``create_app`` instantiates the selected class so
``ProductionConfig`` can refuse to boot without its required settings.

Environment variables:
    DATABASE_URL            PostgreSQL DSN (required in production)
    SECRET_KEY              Flask secret (required in production)
    JWT_SECRET_KEY          HS256 key shared with the identity provider
    GITHUB_TOKEN            service token; used when the caller has none stored
    ENCRYPTION_KEY          Fernet key for stored per-user GitHub tokens
    GITHUB_WEBHOOK_SECRET   HMAC key for X-Hub-Signature-256 (required in production)
    GITHUB_TIMEOUT_SECONDS  per-call timeout, default 15
    REDIS_URL               rate-limit storage, default in-memory
    LOG_LEVEL / LOG_FORMAT  see pmo_platform.middleware.logging_config
"""

import os
import secrets

_INSTANCE_DIR = os.path.join(os.path.abspath(os.path.dirname(os.path.dirname(__file__))), "instance")


def _database_url():
    # SQLAlchemy 2.x only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw or None


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Action payloads are small; webhook deliveries stay well below this
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = True

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or SECRET_KEY
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
    GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
    GITHUB_WEBHOOK_SECRET = os.getenv("GITHUB_WEBHOOK_SECRET")
    GITHUB_TIMEOUT_SECONDS = int(os.getenv("GITHUB_TIMEOUT_SECONDS", "15"))

    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "readable")
    SQLALCHEMY_DATABASE_URI = _database_url() or f"sqlite:///{os.path.join(_INSTANCE_DIR, 'pmo_platform_dev.db')}"


class TestingConfig(Config):
    TESTING = True
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "readable"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False

    JWT_SECRET_KEY = "test-jwt-secret"
    GITHUB_API_URL = "https://api.github.test"
    GITHUB_TOKEN = "test-github-token"
    GITHUB_WEBHOOK_SECRET = "test-webhook-secret"
    ENCRYPTION_KEY = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    _REQUIRED_ENV = ("DATABASE_URL", "SECRET_KEY", "GITHUB_WEBHOOK_SECRET")

    def __init__(self):
        missing = [name for name in self._REQUIRED_ENV if not os.getenv(name)]
        if missing:
            raise RuntimeError(
                f"Missing required production settings: {', '.join(missing)}"
            )


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
