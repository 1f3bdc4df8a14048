from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()


# Key: calling actor (record API clients send X-Actor-Id); otherwise client IP
def _rate_limit_key():
    try:
        # Lazy import avoids circulars during app init
        from flask import request
        actor = (request.headers.get("X-Actor-Id") or "").strip()
        if actor:
            return f"actor:{actor}"
    except RuntimeError:
        pass
    return get_remote_address()


# Storage is configured in create_app() via limiter.init_app(...).
limiter = Limiter(key_func=_rate_limit_key)
