"""Payment backend capability contract.

Every provider exposes the same three operations to the lifecycle services:

- ``authorize`` places a hold without moving money and returns an opaque hold ref
- ``capture`` settles a held amount (idempotent: re-capturing returns the prior result)
- ``void`` releases a hold with no charge (idempotent: re-voiding succeeds silently)

How a provider derives the reference it actually captures or voids (e.g. an
authorization nested under an order) stays inside the adapter.
"""
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


# ── Errors ─────────────────────────────────────────────────────────
class PaymentError(Exception):
    """Base class for adapter failures."""

    def __init__(self, message: str, hold_ref: Optional[str] = None):
        super().__init__(message)
        self.hold_ref = hold_ref


class ProviderUnavailable(PaymentError):
    """Network error, timeout or 5xx from the provider."""


class InvalidAmount(PaymentError):
    pass


class HoldNotFound(PaymentError):
    pass


class HoldAlreadyVoided(PaymentError):
    pass


class HoldAlreadyCaptured(PaymentError):
    pass


# ── Results ────────────────────────────────────────────────────────
class Authorization(BaseModel):
    hold_ref: str
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    redirect_url: Optional[str] = None


class CaptureResult(BaseModel):
    hold_ref: str
    provider_ref: Optional[str] = None
    already_captured: bool = False


class VoidResult(BaseModel):
    hold_ref: str
    already_voided: bool = False


class WebhookEvent(BaseModel):
    provider: str
    event_type: str
    resource_id: Optional[str] = None


# ── Contract ───────────────────────────────────────────────────────
class PaymentBackend(ABC):
    """One implementation per provider; selected by ``PaymentMethod``."""

    name: str = "base"

    @abstractmethod
    def authorize(self, amount: Decimal, currency: str) -> Authorization:
        ...

    @abstractmethod
    def capture(self, hold_ref: str) -> CaptureResult:
        ...

    @abstractmethod
    def void(self, hold_ref: str) -> VoidResult:
        ...

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        raise NotImplementedError(f"{self.name} does not accept webhooks")


def to_minor_units(amount: Decimal) -> int:
    """Convert a positive decimal amount to integer cents."""
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    cents = (amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if cents != amount * 100:
        raise InvalidAmount(f"Amount {amount} has more than two decimal places")
    return int(cents)


def format_amount(amount: Decimal) -> str:
    """Two-decimal string representation used by REST providers."""
    to_minor_units(amount)
    return str(Decimal(amount).quantize(Decimal("0.01")))


