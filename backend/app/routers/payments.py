"""Payment API routes — client-side hold creation and provider webhooks.

Webhooks are informational only: they are verified, logged and acknowledged,
but never drive a request or queue transition.
"""
import logging
from fastapi import APIRouter, HTTPException, Request

from app.config import settings
from app.payments import registry
from app.payments.base import InvalidAmount, PaymentError
from app.schemas.payment import HoldCreate, HoldOut, WebhookAck
from app.services.request_service import provider_failure

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/holds", response_model=HoldOut)
def create_hold(payload: HoldCreate):
    """Place a hold ahead of submission (for checkouts that confirm on the client)."""
    currency = (payload.currency or settings.DEFAULT_CURRENCY).upper()
    try:
        auth = registry.get_backend(payload.payment_method).authorize(payload.amount, currency)
    except InvalidAmount as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PaymentError as exc:
        raise provider_failure(exc) from exc
    logger.info("Hold %s placed via %s for %s %s", auth.hold_ref, payload.payment_method.value, payload.amount, currency)
    return HoldOut(
        payment_hold_ref=auth.hold_ref,
        client_secret=auth.client_secret,
        approval_url=auth.approval_url,
        redirect_url=auth.redirect_url,
    )


@router.post("/webhooks/{provider}", response_model=WebhookAck)
async def provider_webhook(provider: str, request: Request):
    if provider not in registry.PROVIDER_FOR_METHOD.values():
        raise HTTPException(status_code=404, detail="Unknown payment provider")
    payload = await request.body()
    try:
        event = registry.get_provider(provider).parse_webhook(payload, request.headers)
    except NotImplementedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PaymentError as exc:
        logger.warning("Rejected %s webhook: %s", provider, exc)
        raise HTTPException(status_code=400, detail="Invalid webhook") from exc

    logger.info("%s webhook %s for %s", provider, event.event_type, event.resource_id)
    return WebhookAck(event_type=event.event_type)
