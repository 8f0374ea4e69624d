"""PayPal backend — orders with ``intent=AUTHORIZE``.

The hold ref handed to the lifecycle services is the order id. Capture and
void act on the authorization nested under the order, which is looked up
here on every call.
"""
import json
import logging
import time
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx

from app.payments.base import (
    Authorization,
    CaptureResult,
    HoldAlreadyCaptured,
    HoldAlreadyVoided,
    HoldNotFound,
    PaymentError,
    ProviderUnavailable,
    VoidResult,
    WebhookEvent,
    format_amount,
)
from app.payments.rest import RestBackend

logger = logging.getLogger(__name__)

BASE_URLS = {
    "live": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}


class PayPalBackend(RestBackend):
    name = "paypal"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        mode: str = "sandbox",
        timeout: float = 15.0,
        return_url: str = "",
        cancel_url: str = "",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(BASE_URLS.get(mode, BASE_URLS["sandbox"]), timeout, transport)
        self.client_id = client_id
        self.client_secret = client_secret
        self.return_url = return_url
        self.cancel_url = cancel_url
        self._token: Optional[str] = None
        self._token_expires = 0.0

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires:
            return self._token
        try:
            resp = self.client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"PayPal token request failed: {exc}") from exc
        if resp.status_code >= 500 or resp.status_code == 429:
            raise ProviderUnavailable(f"PayPal token request returned {resp.status_code}")
        if resp.status_code >= 400:
            # Rejected credentials are not transient.
            raise PaymentError(f"PayPal rejected the client credentials ({resp.status_code})")
        data = resp.json()
        self._token = data["access_token"]
        self._token_expires = time.monotonic() + int(data.get("expires_in", 300)) - 60
        return self._token

    def _auth_headers(self, method: str, path: str, body: bytes) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token()}"}

    def authorize(self, amount: Decimal, currency: str) -> Authorization:
        order = self._send("POST", "/v2/checkout/orders", {
            "intent": "AUTHORIZE",
            "purchase_units": [{
                "amount": {"currency_code": currency.upper(), "value": format_amount(amount)},
                "description": "DJ Song Request Donation",
            }],
            "application_context": {
                "return_url": self.return_url,
                "cancel_url": self.cancel_url,
                "brand_name": "DJ Request",
                "user_action": "PAY_NOW",
            },
        }, headers={"Prefer": "return=representation"})
        approval_url = next(
            (link["href"] for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info("PayPal order %s created for %s %s", order["id"], amount, currency)
        return Authorization(hold_ref=order["id"], approval_url=approval_url)

    @staticmethod
    def _authorizations(order: dict[str, Any]) -> list[dict[str, Any]]:
        units = order.get("purchase_units") or [{}]
        return (units[0].get("payments") or {}).get("authorizations") or []

    def _resolve_authorization(self, order_id: str, authorize_if_needed: bool) -> Optional[dict[str, Any]]:
        """Return the authorization under ``order_id``, authorizing an approved order on demand."""
        order = self._send("GET", f"/v2/checkout/orders/{order_id}", hold_ref=order_id)
        auths = self._authorizations(order)
        if auths:
            return auths[0]
        if authorize_if_needed and order.get("status") == "APPROVED":
            order = self._send(
                "POST", f"/v2/checkout/orders/{order_id}/authorize", {},
                hold_ref=order_id,
                headers={"PayPal-Request-Id": f"authorize-{order_id}"},
            )
            auths = self._authorizations(order)
            if auths:
                return auths[0]
        return None

    def capture(self, hold_ref: str) -> CaptureResult:
        auth = self._resolve_authorization(hold_ref, authorize_if_needed=True)
        if auth is None:
            raise HoldNotFound(f"PayPal order {hold_ref} has no authorization", hold_ref)

        auth_status = auth.get("status")
        if auth_status in ("CAPTURED", "PARTIALLY_CAPTURED"):
            return CaptureResult(hold_ref=hold_ref, provider_ref=auth["id"], already_captured=True)
        if auth_status == "VOIDED":
            raise HoldAlreadyVoided(f"PayPal authorization {auth['id']} was voided", hold_ref)
        if auth_status in ("EXPIRED", "DENIED"):
            raise HoldNotFound(f"PayPal authorization {auth['id']} is {auth_status.lower()}", hold_ref)

        capture = self._send(
            "POST", f"/v2/payments/authorizations/{auth['id']}/capture", {"final_capture": True},
            hold_ref=hold_ref,
            headers={"PayPal-Request-Id": f"capture-{auth['id']}"},
        )
        logger.info("PayPal authorization %s captured (%s)", auth["id"], capture.get("id"))
        return CaptureResult(hold_ref=hold_ref, provider_ref=capture.get("id"))

    def void(self, hold_ref: str) -> VoidResult:
        auth = self._resolve_authorization(hold_ref, authorize_if_needed=False)
        if auth is None:
            # Buyer never approved the order, so nothing is held.
            logger.info("PayPal order %s has no authorization to void", hold_ref)
            return VoidResult(hold_ref=hold_ref)

        auth_status = auth.get("status")
        if auth_status in ("VOIDED", "EXPIRED"):
            return VoidResult(hold_ref=hold_ref, already_voided=True)
        if auth_status in ("CAPTURED", "PARTIALLY_CAPTURED"):
            raise HoldAlreadyCaptured(f"PayPal authorization {auth['id']} was captured", hold_ref)

        self._send(
            "POST", f"/v2/payments/authorizations/{auth['id']}/void",
            hold_ref=hold_ref,
            headers={"PayPal-Request-Id": f"void-{auth['id']}"},
        )
        logger.info("PayPal authorization %s voided", auth["id"])
        return VoidResult(hold_ref=hold_ref)

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise PaymentError(f"Invalid PayPal webhook: {exc}") from exc
        return WebhookEvent(
            provider=self.name,
            event_type=event.get("event_type", "unknown"),
            resource_id=(event.get("resource") or {}).get("id"),
        )
