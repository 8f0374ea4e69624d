"""Stripe backend — manual-capture PaymentIntents (CARD, APPLE_PAY, GOOGLE_PAY)."""
import logging
from decimal import Decimal
from typing import Mapping

import stripe

from app.payments.base import (
    Authorization,
    CaptureResult,
    HoldAlreadyCaptured,
    HoldAlreadyVoided,
    HoldNotFound,
    InvalidAmount,
    PaymentBackend,
    PaymentError,
    ProviderUnavailable,
    VoidResult,
    WebhookEvent,
    to_minor_units,
)

logger = logging.getLogger(__name__)

# PaymentIntent statuses in which funds are reserved but not yet settled.
CAPTURABLE = {"requires_capture"}
CANCELLABLE = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
    "requires_capture",
}


class StripeBackend(PaymentBackend):
    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _call(self, fn, *args, hold_ref=None, **kwargs):
        """Invoke a Stripe SDK call and translate its errors into PaymentErrors."""
        try:
            return fn(*args, api_key=self.api_key, **kwargs)
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                raise HoldNotFound(f"PaymentIntent {hold_ref} not found", hold_ref) from exc
            if exc.param == "amount":
                raise InvalidAmount(str(exc.user_message or exc), hold_ref) from exc
            raise PaymentError(str(exc.user_message or exc), hold_ref) from exc
        except stripe.StripeError as exc:
            logger.warning("Stripe call failed for %s: %s", hold_ref, exc)
            raise ProviderUnavailable(str(exc), hold_ref) from exc

    def authorize(self, amount: Decimal, currency: str) -> Authorization:
        intent = self._call(
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            capture_method="manual",
            automatic_payment_methods={"enabled": True},
            metadata={"service": "dj-request"},
        )
        logger.info("Stripe PaymentIntent %s created for %s %s", intent.id, amount, currency)
        return Authorization(hold_ref=intent.id, client_secret=intent.client_secret)

    def capture(self, hold_ref: str) -> CaptureResult:
        intent = self._call(stripe.PaymentIntent.retrieve, hold_ref, hold_ref=hold_ref)
        if intent.status == "succeeded":
            return CaptureResult(hold_ref=hold_ref, provider_ref=intent.id, already_captured=True)
        if intent.status == "canceled":
            raise HoldAlreadyVoided(f"PaymentIntent {hold_ref} was cancelled", hold_ref)
        if intent.status not in CAPTURABLE:
            raise HoldNotFound(f"PaymentIntent {hold_ref} has no authorized funds ({intent.status})", hold_ref)

        intent = self._call(stripe.PaymentIntent.capture, hold_ref, hold_ref=hold_ref)
        logger.info("Stripe PaymentIntent %s captured", hold_ref)
        return CaptureResult(hold_ref=hold_ref, provider_ref=intent.id)

    def void(self, hold_ref: str) -> VoidResult:
        intent = self._call(stripe.PaymentIntent.retrieve, hold_ref, hold_ref=hold_ref)
        if intent.status == "canceled":
            return VoidResult(hold_ref=hold_ref, already_voided=True)
        if intent.status == "succeeded":
            raise HoldAlreadyCaptured(f"PaymentIntent {hold_ref} was already captured", hold_ref)
        if intent.status not in CANCELLABLE:
            raise PaymentError(f"PaymentIntent {hold_ref} cannot be cancelled ({intent.status})", hold_ref)

        self._call(stripe.PaymentIntent.cancel, hold_ref, hold_ref=hold_ref)
        logger.info("Stripe PaymentIntent %s cancelled", hold_ref)
        return VoidResult(hold_ref=hold_ref)

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise PaymentError("Stripe webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(
                payload, headers.get("stripe-signature", ""), self.webhook_secret
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise PaymentError(f"Invalid Stripe webhook: {exc}") from exc
        resource_id = getattr(event.data.object, "id", None)
        return WebhookEvent(provider=self.name, event_type=event["type"], resource_id=resource_id)
