from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from gc_estimator.records import Record
from gc_estimator.services.context import OrgContext, current_org_context
from gc_estimator.services.errors import BackendUnavailable, error_from_response
from gc_estimator.services.stores.base import RecordStore
from gc_estimator.utils.helpers import to_wire

logger = logging.getLogger(__name__)


class RemoteStore(RecordStore):
    """
    Networked store: the record API (``/api/v1/<entity>``) over a requests.Session.

    Failures are surfaced, never retried and never redirected to another store:
      - transport errors, 401/403 and 5xx -> BackendUnavailable
      - 404 -> NotFound, 409 -> KeyConflict, 400/422 -> ValidationFailure
    Writes need a resolved OrgContext; without one nothing is sent.
    Timeouts belong to the transport (``timeout`` is passed straight through).
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
        context_provider: Callable[[], OrgContext] = current_org_context,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.context_provider = context_provider

    # ---------- low-level helpers ----------
    def _headers(self, *, write: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        ctx = self.context_provider()
        if write and not ctx.resolved:
            raise BackendUnavailable("No resolved actor/organization; remote writes are refused.")
        if ctx.actor_id:
            headers["X-Actor-Id"] = str(ctx.actor_id)
        if ctx.org_id:
            headers["X-Org-Id"] = str(ctx.org_id)
        return headers

    def _request(self, method: str, path: str, *, write: bool = False, **kwargs) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = self._headers(write=write)
        try:
            r = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("Remote store %s %s failed: %s", method, url, e)
            raise BackendUnavailable(f"Remote store unreachable: {e}") from e

        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = None
            err = error_from_response(r.status_code, payload)
            if isinstance(err, BackendUnavailable):
                logger.warning("Remote store %s %s -> %s", method, url, r.status_code)
            raise err
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # ---------- contract ----------
    def get(self, entity: str, record_id: str) -> Record:
        cls = self.record_type(entity)
        return cls.from_dict(self._request("GET", f"{entity}/{record_id}"))

    def list(self, entity: str, **filters: Any) -> List[Record]:
        cls = self.record_type(entity)
        params = {k: str(v) for k, v in self.clean_filters(entity, filters).items()}
        rows = self._request("GET", entity, params=params) or []
        return [cls.from_dict(row) for row in rows]

    def create(self, entity: str, data: Dict[str, Any]) -> Record:
        cls = self.record_type(entity)
        return cls.from_dict(self._request("POST", entity, write=True, json=to_wire(data)))

    def update(self, entity: str, record_id: str, changes: Dict[str, Any]) -> Record:
        cls = self.record_type(entity)
        return cls.from_dict(
            self._request("PATCH", f"{entity}/{record_id}", write=True, json=to_wire(changes))
        )

    def delete(self, entity: str, record_id: str) -> None:
        self.record_type(entity)
        self._request("DELETE", f"{entity}/{record_id}", write=True)
