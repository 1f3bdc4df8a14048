import os

from dotenv import dotenv_values

_ENV_FALLBACK = dotenv_values(".env")


class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")

    # Database (env in prod; dev/test may use default)
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # --- Backend routing ---
    # "local" = embedded SQL store, "remote" = record API over HTTP
    STORE_MODE = os.getenv("STORE_MODE", "local").lower()
    REMOTE_API_URL = os.getenv("REMOTE_API_URL", "http://localhost:5000/api/v1")
    REMOTE_API_TOKEN = os.getenv("REMOTE_API_TOKEN")
    REMOTE_TIMEOUT = float(os.getenv("REMOTE_TIMEOUT", "15"))

    # Record API server side: bearer token expected from remote clients (unset = not enforced)
    RECORDS_API_TOKEN = os.getenv("RECORDS_API_TOKEN")
    RECORDS_API_RATE_LIMIT = os.getenv("RECORDS_API_RATE_LIMIT", "600 per minute")

    # Org/actor context used when no request supplies one (CLI, single-user desktop)
    ORG_ID = os.getenv("ORG_ID")
    ACTOR_ID = os.getenv("ACTOR_ID")

    # --- Pricing defaults (versioned; bump the version when a default changes) ---
    PRICING_CONFIG_VERSION = 2
    DEFAULT_MARKUP_PERCENT = os.getenv("DEFAULT_MARKUP_PERCENT", "20")
    # v1 shipped 11.1 as the implicit markup; rows still carrying it are read as the current default
    LEGACY_MARKUP_SENTINEL = "11.1"
    DEFAULT_CONTINGENCY_PERCENT = os.getenv("DEFAULT_CONTINGENCY_PERCENT", "10")
    DEFAULT_WASTE_FACTOR = os.getenv("DEFAULT_WASTE_FACTOR", "10")

    # Flask-Limiter
    RATELIMIT_HEADERS_ENABLED = True


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # REQUIRE env vars in production (fail fast if missing)
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")


class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    STORE_MODE = "local"
    RATELIMIT_ENABLED = False
    ORG_ID = "org-test"
    ACTOR_ID = "actor-test"


_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
