from __future__ import annotations

from typing import Optional


class ServiceError(RuntimeError):
    """Recoverable service error (validation/uniqueness/etc.)."""

    code = "service_error"
    status = 400

    def to_payload(self) -> dict:
        return {"error": self.code, "message": str(self)}


class NotFound(ServiceError):
    code = "not_found"
    status = 404


class BackendUnavailable(ServiceError):
    """Transport or auth failure against the active store. Never retried here."""

    code = "backend_unavailable"
    status = 503


class KeyConflict(ServiceError):
    code = "key_conflict"
    status = 409

    def __init__(self, message: str, *, suggestion: Optional[str] = None):
        super().__init__(message)
        self.suggestion = suggestion

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


class ValidationFailure(ServiceError):
    code = "validation_failure"
    status = 422


_BY_CODE = {cls.code: cls for cls in (NotFound, BackendUnavailable, KeyConflict, ValidationFailure)}


def error_from_response(status: int, payload: Optional[dict]) -> ServiceError:
    """Rebuild the typed error a record API response describes."""
    payload = payload if isinstance(payload, dict) else {}
    message = payload.get("message") or f"Record API responded {status}"
    cls = _BY_CODE.get(payload.get("error"))
    if cls is None:
        # auth, timeout and throttling are transport failures, not bad input
        if status in (401, 403, 408, 429) or status >= 500:
            cls = BackendUnavailable
        elif status == 404:
            cls = NotFound
        elif status == 409:
            cls = KeyConflict
        else:
            cls = ValidationFailure
    if cls is KeyConflict:
        return KeyConflict(message, suggestion=payload.get("suggestion"))
    return cls(message)
