"""Checkout gateway abstraction and its Stripe implementation."""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

import stripe

from ..core.exceptions import GatewayFailureError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import Booking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted payment page created for a booking."""

    id: str
    url: str


class CheckoutGateway(Protocol):
    """External payment collaborator used by the booking lifecycle."""

    async def create_session(
        self,
        booking: Booking,
        success_url: str,
        failure_url: str,
        *,
        description: str = "",
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        ...

    async def retrieve_session(self, session_id: str) -> str:
        """Payment intent reference of a completed session."""
        ...

    async def session_booking_ref(self, session_id: str) -> Optional[str]:
        """Booking id the session was opened for, None when it carries none."""
        ...

    async def refund(self, payment_intent_ref: str) -> str:
        """Refund the payment in full; returns the refund id."""
        ...

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[str]:
        """Session id of a verified payment-success event, None for other events."""
        ...


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class StripeCheckoutGateway:
    """
    CheckoutGateway backed by Stripe Checkout.

    The stripe SDK is synchronous; calls run on a worker thread so they never
    block the event loop.
    """

    def __init__(self, api_key: str, currency: str = "inr", webhook_secret: str = ""):
        self.api_key = api_key
        self.currency = currency.lower()
        self.webhook_secret = webhook_secret

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            with metrics_collector.time_gateway_call(operation):
                return await asyncio.to_thread(fn, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(
                "Stripe call failed",
                extra={"operation": operation, "error": str(e), "stripe_code": getattr(e, "code", None)}
            )
            raise GatewayFailureError(operation, getattr(e, "user_message", None) or str(e))

    async def create_session(
        self,
        booking: Booking,
        success_url: str,
        failure_url: str,
        *,
        description: str = "",
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        customer_params = {"metadata": {"user_id": booking.user_id}}
        if customer_email:
            customer_params["email"] = customer_email
        customer = await self._call("create_customer", stripe.Customer.create, **customer_params)

        session = await self._call(
            "create_session",
            stripe.checkout.Session.create,
            mode="payment",
            customer=customer.id,
            client_reference_id=str(booking.id),
            success_url=success_url,
            cancel_url=failure_url,
            billing_address_collection="required",
            line_items=[{
                "quantity": 1,
                "price_data": {
                    "currency": self.currency,
                    "unit_amount": to_minor_units(booking.amount),
                    "product_data": {
                        "name": description or f"Booking {booking.id}",
                        "description": f"Booking ID: {booking.id}",
                    },
                },
            }],
            metadata={"booking_id": str(booking.id)},
        )

        logger.info(
            "Created checkout session",
            extra={"booking_id": str(booking.id), "session_id": session.id}
        )
        return CheckoutSession(id=session.id, url=session.url)

    async def retrieve_session(self, session_id: str) -> str:
        session = await self._call("retrieve_session", stripe.checkout.Session.retrieve, session_id)
        if not session.payment_intent:
            raise GatewayFailureError("retrieve_session", f"session {session_id} has no payment intent")
        # Expanded sessions carry the intent object instead of its id
        intent = session.payment_intent
        return intent if isinstance(intent, str) else intent.id

    async def session_booking_ref(self, session_id: str) -> Optional[str]:
        session = await self._call("retrieve_session", stripe.checkout.Session.retrieve, session_id)
        if session.client_reference_id:
            return session.client_reference_id
        metadata = session.metadata or {}
        return metadata.get("booking_id")

    async def refund(self, payment_intent_ref: str) -> str:
        refund = await self._call("refund", stripe.Refund.create, payment_intent=payment_intent_ref)
        logger.info(
            "Created refund",
            extra={"payment_intent": payment_intent_ref, "refund_id": refund.id, "status": refund.status}
        )
        return refund.id

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[str]:
        """
        Raises:
            ValidationError: If the payload or its signature is invalid
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            raise ValidationError("Invalid webhook signature")

        if event["type"] != "checkout.session.completed":
            logger.debug("Ignoring webhook event", extra={"event_type": event["type"]})
            return None
        return event["data"]["object"]["id"]
