"""Maps a request's ``PaymentMethod`` to the backend that serves it."""
import logging
import threading
from typing import Optional

from app.config import settings
from app.models.song_request import PaymentMethod
from app.payments.base import PaymentBackend
from app.payments.paypal_backend import PayPalBackend
from app.payments.satispay_backend import SatispayBackend
from app.payments.stripe_backend import StripeBackend

logger = logging.getLogger(__name__)

PROVIDER_FOR_METHOD = {
    PaymentMethod.card: "stripe",
    PaymentMethod.apple_pay: "stripe",
    PaymentMethod.google_pay: "stripe",
    PaymentMethod.paypal: "paypal",
    PaymentMethod.satispay: "satispay",
}

_backends: dict[str, PaymentBackend] = {}
_override: Optional[PaymentBackend] = None
_lock = threading.Lock()


def _build(provider: str) -> PaymentBackend:
    if provider == "stripe":
        return StripeBackend(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    if provider == "paypal":
        return PayPalBackend(
            settings.PAYPAL_CLIENT_ID,
            settings.PAYPAL_CLIENT_SECRET,
            mode=settings.PAYPAL_MODE,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            return_url=f"{settings.FRONTEND_URL}/payment/success",
            cancel_url=f"{settings.FRONTEND_URL}/payment/cancel",
        )
    if provider == "satispay":
        return SatispayBackend(
            settings.SATISPAY_KEY_ID,
            settings.SATISPAY_PRIVATE_KEY,
            mode=settings.SATISPAY_MODE,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    raise KeyError(provider)


def get_provider(provider: str) -> PaymentBackend:
    """Return the (lazily built, cached) backend for a provider name."""
    if _override is not None:
        return _override
    with _lock:
        if provider not in _backends:
            _backends[provider] = _build(provider)
            logger.info("Initialised %s payment backend", provider)
        return _backends[provider]


def get_backend(method: PaymentMethod) -> PaymentBackend:
    return get_provider(PROVIDER_FOR_METHOD[PaymentMethod(method)])


def set_backend_override(backend: Optional[PaymentBackend]) -> None:
    """Route every payment method to ``backend`` (or restore the real ones with ``None``)."""
    global _override
    _override = backend
