import os
from flask import Flask, jsonify

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=False)


from .config import get_config
from .extensions import db, migrate, limiter
from .observability import init_logging, init_sentry
from .services.errors import ServiceError


def create_app(config_object=None):
    app = Flask(__name__)

    # ---- Rate limiting storage ----
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_DEFAULTS", ["1000 per hour"])

    # Config: clean, explicit, class-based
    app.config.from_object(config_object or get_config())

    # --- Required env validation for prod-like envs (staging/production) ---
    def _require(name: str):
        val = os.getenv(name) or app.config.get(name)
        if not val:
            raise RuntimeError(f"Missing required environment variable: {name}")
        return val

    if app_env in ("staging", "production"):
        _require("SECRET_KEY")
        _require("DATABASE_URL")
        if app.config.get("STORE_MODE") == "remote":
            _require("REMOTE_API_URL")

    init_logging(app)
    init_sentry(app)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    limiter.init_app(app)

    from .services.router import init_stores
    init_stores(app)

    # Blueprints
    from .blueprints.records import bp as records_bp
    app.register_blueprint(records_bp)

    @app.get("/healthz")
    @limiter.exempt
    def healthz():
        return jsonify({"status": "ok", "store_mode": app.config.get("STORE_MODE")}), 200

    # ---- JSON errors (the record API's clients parse these) ----
    @app.errorhandler(ServiceError)
    def _service_error(e):
        return jsonify(e.to_payload()), e.status

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"error": "not_found", "message": "Resource not found."}), 404

    @app.errorhandler(429)
    def _rate_limited(e):
        return jsonify({"error": "rate_limited", "message": str(getattr(e, "description", "") or "Too many requests.")}), 429

    @app.errorhandler(500)
    def _server_error(e):
        app.logger.exception("Unhandled error")
        return jsonify({"error": "server_error", "message": "Internal server error."}), 500

    from .cli import register_cli
    register_cli(app)

    app.logger.info("gc-estimator started (env=%s, store=%s)", app_env, app.config.get("STORE_MODE"))
    return app
