"""
Request / correlation ids for outbound calls.

Callers that already carry ids (e.g. an automation layer handling an inbound
request) set the context vars; everything else gets fresh UUIDs.
"""
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def new_id() -> str:
    return str(uuid.uuid4())


def corr_headers(extra: Optional[dict] = None) -> dict:
    """
    Standard outbound headers:
      - x-request-id / x-correlation-id (propagated or fresh)
      - plus any extras (e.g., {"Authorization": "..."}).
    """
    rid = request_id_var.get() or new_id()
    cid = correlation_id_var.get() or rid
    base = {
        "x-request-id": rid,
        "x-correlation-id": cid,
    }
    if extra:
        base.update(extra)
    return base
