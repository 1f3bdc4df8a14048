from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from flask import current_app, g, has_app_context


@dataclass(frozen=True)
class OrgContext:
    """Actor identity + organization scope, resolved by the auth layer upstream."""

    actor_id: Optional[str] = None
    org_id: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return bool(self.actor_id and self.org_id)


def current_org_context() -> OrgContext:
    """Per-request context if one was installed, else the configured fallback."""
    if not has_app_context():
        return OrgContext()
    ctx = g.get("org_context")
    if ctx is not None:
        return ctx
    return OrgContext(
        actor_id=current_app.config.get("ACTOR_ID"),
        org_id=current_app.config.get("ORG_ID"),
    )


@contextmanager
def org_context(actor_id: Optional[str], org_id: Optional[str]):
    previous = g.get("org_context")
    g.org_context = OrgContext(actor_id=actor_id, org_id=org_id)
    try:
        yield g.org_context
    finally:
        g.org_context = previous
