"""Satispay backend — MATCH_CODE payments accepted or cancelled by id.

Requests are signed with the merchant's RSA key following Satispay's
HTTP-signature scheme over ``(request-target) host date digest``.
"""
import base64
import hashlib
import logging
from datetime import datetime, timezone
from decimal import Decimal
from email.utils import format_datetime
from typing import Optional
from urllib.parse import urlsplit

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from app.payments.base import (
    Authorization,
    CaptureResult,
    HoldAlreadyCaptured,
    HoldAlreadyVoided,
    PaymentError,
    VoidResult,
    to_minor_units,
)
from app.payments.rest import RestBackend

logger = logging.getLogger(__name__)

BASE_URLS = {
    "live": "https://authservices.satispay.com",
    "staging": "https://staging.authservices.satispay.com",
}
PAYMENTS_PATH = "/g_business/v1/payments"


class SatispayBackend(RestBackend):
    name = "satispay"

    def __init__(
        self,
        key_id: str,
        private_key_pem: str,
        mode: str = "staging",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        base_url = BASE_URLS.get(mode, BASE_URLS["staging"])
        super().__init__(base_url, timeout, transport)
        self.key_id = key_id
        self.host = urlsplit(base_url).netloc
        self._private_key = (
            serialization.load_pem_private_key(private_key_pem.encode(), password=None)
            if private_key_pem else None
        )

    def _auth_headers(self, method: str, path: str, body: bytes) -> dict[str, str]:
        if self._private_key is None:
            raise PaymentError("Satispay private key not configured")
        date = format_datetime(datetime.now(timezone.utc), usegmt=True)
        digest = "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode()
        string_to_sign = "\n".join([
            f"(request-target): {method.lower()} {path}",
            f"host: {self.host}",
            f"date: {date}",
            f"digest: {digest}",
        ])
        signature = base64.b64encode(
            self._private_key.sign(string_to_sign.encode(), padding.PKCS1v15(), hashes.SHA256())
        ).decode()
        return {
            "Host": self.host,
            "Date": date,
            "Digest": digest,
            "Authorization": (
                f'Signature keyId="{self.key_id}", algorithm="rsa-sha256", '
                f'headers="(request-target) host date digest", signature="{signature}"'
            ),
        }

    def authorize(self, amount: Decimal, currency: str) -> Authorization:
        payment = self._send("POST", PAYMENTS_PATH, {
            "flow": "MATCH_CODE",
            "amount_unit": to_minor_units(amount),
            "currency": currency.upper(),
            "description": "DJ Song Request",
        })
        logger.info("Satispay payment %s created for %s %s", payment["id"], amount, currency)
        return Authorization(hold_ref=payment["id"], redirect_url=payment.get("redirect_url"))

    def _status(self, hold_ref: str) -> str:
        return self._send("GET", f"{PAYMENTS_PATH}/{hold_ref}", hold_ref=hold_ref).get("status", "")

    def capture(self, hold_ref: str) -> CaptureResult:
        current = self._status(hold_ref)
        if current == "ACCEPTED":
            return CaptureResult(hold_ref=hold_ref, provider_ref=hold_ref, already_captured=True)
        if current == "CANCELED":
            raise HoldAlreadyVoided(f"Satispay payment {hold_ref} was cancelled", hold_ref)

        self._send("PUT", f"{PAYMENTS_PATH}/{hold_ref}", {"action": "ACCEPT"}, hold_ref=hold_ref)
        logger.info("Satispay payment %s accepted", hold_ref)
        return CaptureResult(hold_ref=hold_ref, provider_ref=hold_ref)

    def void(self, hold_ref: str) -> VoidResult:
        current = self._status(hold_ref)
        if current == "CANCELED":
            return VoidResult(hold_ref=hold_ref, already_voided=True)
        if current == "ACCEPTED":
            raise HoldAlreadyCaptured(f"Satispay payment {hold_ref} was already accepted", hold_ref)

        self._send("PUT", f"{PAYMENTS_PATH}/{hold_ref}", {"action": "CANCEL"}, hold_ref=hold_ref)
        logger.info("Satispay payment %s cancelled", hold_ref)
        return VoidResult(hold_ref=hold_ref)
