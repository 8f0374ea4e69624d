"""Shared HTTP plumbing for providers reached over plain REST (PayPal, Satispay)."""
import json
import logging
from typing import Any, Optional

import httpx

from app.payments.base import HoldNotFound, PaymentBackend, PaymentError, ProviderUnavailable

logger = logging.getLogger(__name__)


class RestBackend(PaymentBackend):
    """Wraps an ``httpx.Client`` and maps transport/HTTP failures onto PaymentErrors."""

    def __init__(self, base_url: str, timeout: float, transport: Optional[httpx.BaseTransport] = None):
        self.client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _auth_headers(self, method: str, path: str, body: bytes) -> dict[str, str]:
        return {}

    def _send(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        hold_ref: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        body = json.dumps(payload).encode() if payload is not None else b""
        all_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        all_headers.update(self._auth_headers(method, path, body))
        all_headers.update(headers or {})

        try:
            resp = self.client.request(method, path, content=body or None, headers=all_headers)
        except httpx.HTTPError as exc:
            logger.warning("%s %s %s failed: %s", self.name, method, path, exc)
            raise ProviderUnavailable(f"{self.name} unreachable: {exc}", hold_ref) from exc

        if resp.status_code == 404:
            raise HoldNotFound(f"{self.name} resource {path} not found", hold_ref)
        if resp.status_code >= 500 or resp.status_code == 429:
            logger.warning("%s %s %s returned %d", self.name, method, path, resp.status_code)
            raise ProviderUnavailable(f"{self.name} returned {resp.status_code}", hold_ref)
        if resp.status_code >= 400:
            raise PaymentError(f"{self.name} rejected {method} {path}: {resp.text}", hold_ref)
        return resp.json() if resp.content else {}

    def close(self) -> None:
        self.client.close()
