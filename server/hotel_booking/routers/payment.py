"""Payment router for checkout gateway callbacks."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_checkout_gateway, get_pricing_pipeline
from ..schemas.booking import WebhookAck
from ..services.booking_service import BookingLifecycleManager
from ..services.checkout import CheckoutGateway
from ..services.pricing import PricingPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

DB_DEPENDENCY = Depends(get_db)
GATEWAY_DEPENDENCY = Depends(get_checkout_gateway)
PRICING_DEPENDENCY = Depends(get_pricing_pipeline)
SIGNATURE_HEADER = Header(None, alias="Stripe-Signature")


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    signature: Optional[str] = SIGNATURE_HEADER,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: CheckoutGateway = GATEWAY_DEPENDENCY,
    pricing: PricingPipeline = PRICING_DEPENDENCY,
) -> WebhookAck:
    """
    Receive a signed gateway event.

    A completed checkout confirms its booking; other event types are acknowledged and ignored.
    """
    payload = await request.body()
    session_id = gateway.verify_webhook(payload, signature)
    if session_id is None:
        return WebhookAck(received=True)

    manager = BookingLifecycleManager(db, gateway=gateway, pricing=pricing)
    booking = await manager.confirm_payment(session_id)

    logger.info(
        "Payment webhook processed",
        extra={"session_id": session_id, "booking_id": str(booking.id)}
    )
    return WebhookAck(received=True, booking_id=str(booking.id), status=booking.status)
