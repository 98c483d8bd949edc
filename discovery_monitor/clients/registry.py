# discovery_monitor/clients/registry.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from discovery_monitor.config import settings
from discovery_monitor.correlation import corr_headers
from discovery_monitor.errors import InvalidRequestError, SubmissionError
from discovery_monitor.models.discovery import (
    DiscoveryConfig,
    DiscoveryRequest,
    ScanMode,
    ServerRegistrationRequest,
)
from discovery_monitor.models.events import EntityCategory

log = logging.getLogger("discovery_monitor.clients.registry")

# REST collections that differ from "<category>s"
_COLLECTIONS: Dict[EntityCategory, str] = {
    EntityCategory.DISCOVERER: "discovery",
    EntityCategory.WRITER_GROUP: "writers/groups",
    EntityCategory.DATASET_WRITER: "writers",
}

_ID_KEYS: Dict[EntityCategory, str] = {
    EntityCategory.APPLICATION: "applicationId",
    EntityCategory.WRITER_GROUP: "writerGroupId",
    EntityCategory.DATASET_WRITER: "dataSetWriterId",
}


def _auth_headers() -> dict:
    extra = {"Authorization": f"Bearer {settings.AUTH_TOKEN}"} if settings.AUTH_TOKEN else None
    return corr_headers(extra)


class RegistryClient:
    """
    Job submission + directory lookup against the registry service.
    Implements both the JobService and Directory protocols.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        submit_timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.REGISTRY_SERVICE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S)
        self._submit_timeout = submit_timeout or settings.SUBMIT_TIMEOUT_S

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            r = await self._client.request(method, url, headers=_auth_headers(), **kwargs)
        except httpx.HTTPError as e:
            raise SubmissionError(
                f"{method} {url} failed: {e}", context={"url": url}
            ) from e
        if r.is_error:
            raise SubmissionError(
                f"{r.status_code}: {r.text}",
                status_code=r.status_code,
                context={"url": url, "method": method},
            )
        return r

    # ---- JobService -------------------------------------------------------
    async def submit_discovery(self, request: DiscoveryRequest) -> None:
        await self._send(
            "POST",
            "/v3/applications/discover",
            json=request.to_wire(),
            timeout=self._submit_timeout,
        )
        log.info("discovery submitted", extra={"request_id": request.id})

    async def submit_registration(self, request: ServerRegistrationRequest) -> None:
        if not request.discovery_url:
            raise InvalidRequestError("missing discovery url", context={"request_id": request.id})
        await self._send(
            "POST",
            "/v3/applications",
            json=request.to_wire(),
            timeout=self._submit_timeout,
        )
        log.info("server registration submitted", extra={"request_id": request.id})

    async def cancel(self, correlation_id: str) -> None:
        if not correlation_id:
            raise InvalidRequestError("missing request id to cancel")
        await self._send("DELETE", f"/v3/applications/discover/{correlation_id}")

    async def set_scan_mode(
        self, entity_id: str, mode: ScanMode, config: Optional[DiscoveryConfig]
    ) -> None:
        if not entity_id:
            raise InvalidRequestError("missing discoverer id")
        body = (config or DiscoveryConfig()).to_wire()
        await self._send(
            "POST",
            f"/v3/discovery/{entity_id}",
            params={"mode": ScanMode(mode).value},
            json=body,
        )
        log.info("scan mode set", extra={"entity_id": entity_id, "mode": ScanMode(mode).value})

    # ---- Directory ----------------------------------------------------------
    async def list_all_entities(self, category: EntityCategory) -> List[str]:
        """Every registered id in a category, following continuation tokens."""
        path = f"/v3/{_COLLECTIONS.get(category, category.collection)}"
        id_key = _ID_KEYS.get(category, "id")
        ids: List[str] = []
        token: Optional[str] = None
        while True:
            params = {"continuationToken": token} if token else None
            r = await self._send("GET", path, params=params)
            data = r.json() or {}
            items = data.get("items", []) if isinstance(data, dict) else data
            for item in items or []:
                eid = item.get(id_key) or item.get("id")
                if eid:
                    ids.append(str(eid))
            token = data.get("continuationToken") if isinstance(data, dict) else None
            if not token:
                break
        log.info("listed %d %s(s)", len(ids), category.value)
        return ids
