"""
Record API: the server side of the remote store.

Plain CRUD over this process's own database, one resource per entity:
  GET    /api/v1/<entity>?<filter>=...
  POST   /api/v1/<entity>
  GET    /api/v1/<entity>/<id>
  PATCH  /api/v1/<entity>/<id>
  DELETE /api/v1/<entity>/<id>

No aggregation happens here; clients run the pipeline and write the results.
Writes need X-Actor-Id and X-Org-Id. When RECORDS_API_TOKEN is set every call
needs the matching bearer token.
"""
import hmac

from flask import current_app, g, jsonify, request

from gc_estimator.extensions import db, limiter
from gc_estimator.services.context import OrgContext
from gc_estimator.services.errors import ValidationFailure
from gc_estimator.services.stores import LocalStore

from . import bp

_WRITE_METHODS = ("POST", "PATCH", "DELETE")


def _rate_limit() -> str:
    return current_app.config.get("RECORDS_API_RATE_LIMIT", "600 per minute")


def _unauthorized(message: str):
    return jsonify({"error": "unauthorized", "message": message}), 401


@bp.before_request
def _authenticate():
    token = current_app.config.get("RECORDS_API_TOKEN")
    if token:
        sent = request.headers.get("Authorization", "")
        if not hmac.compare_digest(sent, f"Bearer {token}"):
            return _unauthorized("Missing or invalid API token.")

    actor = (request.headers.get("X-Actor-Id") or "").strip()
    org = (request.headers.get("X-Org-Id") or "").strip()
    if request.method in _WRITE_METHODS and not (actor and org):
        current_app.logger.warning("Record API write without actor/org: %s %s", request.method, request.path)
        return _unauthorized("X-Actor-Id and X-Org-Id are required for writes.")
    g.org_context = OrgContext(actor_id=actor or None, org_id=org or None)


def _store() -> LocalStore:
    return LocalStore(db.session)


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailure("Request body must be a JSON object.")
    return data


@bp.get("/<entity>")
@limiter.limit(_rate_limit)
def list_records(entity):
    rows = _store().list(entity, **request.args.to_dict())
    return jsonify([r.to_dict() for r in rows]), 200


@bp.post("/<entity>")
@limiter.limit(_rate_limit)
def create_record(entity):
    data = _body()
    if not data.get("org_id"):
        data["org_id"] = g.org_context.org_id
    record = _store().create(entity, data)
    current_app.logger.debug("Record API created %s %s (actor %s)", entity, record.id, g.org_context.actor_id)
    return jsonify(record.to_dict()), 201


@bp.get("/<entity>/<record_id>")
@limiter.limit(_rate_limit)
def get_record(entity, record_id):
    return jsonify(_store().get(entity, record_id).to_dict()), 200


@bp.patch("/<entity>/<record_id>")
@limiter.limit(_rate_limit)
def update_record(entity, record_id):
    record = _store().update(entity, record_id, _body())
    return jsonify(record.to_dict()), 200


@bp.delete("/<entity>/<record_id>")
@limiter.limit(_rate_limit)
def delete_record(entity, record_id):
    _store().delete(entity, record_id)
    return "", 204
