# bakery_pos/services/http.py
"""Shared plumbing for the back office API clients.

Every endpoint answers with ``{"success": bool, "message": str, "data": ...}``.
Transport errors, non-2xx statuses and ``success: false`` all surface as
``ExternalServiceError`` so callers only handle one exception type.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..checkout.errors import ExternalServiceError
from ..config import CONFIG, ServicesConfig

log = logging.getLogger("bakery-pos.services")


def make_async_client(
    cfg: Optional[ServicesConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    cfg = cfg or CONFIG.services
    headers = {"Accept": "application/json"}
    if cfg.api_token:
        headers["Authorization"] = f"Bearer {cfg.api_token}"
    return httpx.AsyncClient(
        base_url=cfg.base_url,
        timeout=cfg.timeout_seconds,
        headers=headers,
        transport=transport,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
    )


def unwrap(service: str, resp: httpx.Response) -> Any:
    """Returns the envelope's ``data`` or raises ``ExternalServiceError``."""
    try:
        body = resp.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        if resp.is_success:
            raise ExternalServiceError(service, f"{service}: unexpected response", resp.status_code)
        raise ExternalServiceError(service, f"{service} returned HTTP {resp.status_code}", resp.status_code)

    if not resp.is_success or body.get("success") is False:
        message = body.get("message") or body.get("error") or f"{service} returned HTTP {resp.status_code}"
        raise ExternalServiceError(service, str(message), resp.status_code)
    return body.get("data")


class BackOfficeClient:
    service = "backoffice"

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("%s %s %s failed: %s", self.service, method, path, exc)
            raise ExternalServiceError(self.service, f"{self.service} unreachable: {exc}") from exc
        return unwrap(self.service, resp)
