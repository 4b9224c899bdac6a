"""
Stripe integration: customer lookup and webhook dispatch to the revocation handlers
"""
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

import stripe
from sqlalchemy.orm import Session

from models import Order, OrderType
from .config import config
from .ledger import end_read_transaction
from .revocation import (
    revoke_one_time_credits,
    revoke_remaining_subscription_credits_on_end,
    revoke_subscription_credits,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_ORDER_TYPES = (OrderType.SUBSCRIPTION_INITIAL, OrderType.RECURRING)


class StripeService:
    """Service for Stripe operations on the revocation side of the ledger"""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.STRIPE_API_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else config.STRIPE_WEBHOOK_SECRET
        if self.api_key:
            stripe.api_key = self.api_key

    def get_customer_user_id(self, customer_id: str) -> Optional[str]:
        """
        Read our user id from a Stripe customer's metadata.

        Returns:
            The ``userId`` metadata value, or None for deleted customers,
            customers without one, or when Stripe is not configured

        Raises:
            stripe.StripeError: when the customer cannot be retrieved
        """
        if not self.api_key:
            logger.error("❌ Stripe is not initialized. Please check STRIPE_API_KEY.")
            return None

        customer = stripe.Customer.retrieve(customer_id)
        if customer.get("deleted"):
            logger.warning(f"⚠️ Stripe customer {customer_id} is deleted")
            return None
        return (customer.get("metadata") or {}).get("userId")

    def construct_event(self, payload: bytes, signature: str) -> Mapping[str, Any]:
        """Verify the webhook signature and parse the event"""
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            logger.error("❌ Invalid payload in Stripe webhook")
            raise ValueError("Invalid payload")
        except stripe.SignatureVerificationError:
            logger.error("❌ Invalid signature in Stripe webhook")
            raise ValueError("Invalid signature")

    def handle_webhook_event(self, payload: bytes, signature: str, db: Session) -> Dict[str, str]:
        """
        Handle a Stripe webhook delivery.

        Only a bad payload or signature raises (ValueError); every verified
        event is acknowledged so Stripe does not retry it.
        """
        event = self.construct_event(payload, signature)
        return self.dispatch_event(event, db)

    def dispatch_event(self, event: Mapping[str, Any], db: Session) -> Dict[str, str]:
        """Route a verified event to its revocation handler"""
        event_type = event["type"]
        data_object = event["data"]["object"]

        if event_type == "customer.subscription.deleted":
            revoke_remaining_subscription_credits_on_end(
                db, data_object, customer_lookup=self.get_customer_user_id
            )
        elif event_type == "charge.refunded":
            self._handle_charge_refunded(data_object, db)
        else:
            logger.debug(f"Ignoring Stripe event {event.get('id')} of type {event_type}")
            return {"status": "ignored", "type": event_type}

        return {"status": "success", "type": event_type}

    def _handle_charge_refunded(self, charge: Mapping[str, Any], db: Session) -> None:
        original_order = self.find_original_order(db, charge)
        if original_order is None:
            logger.warning(f"⚠️ No original order found for refunded charge {charge.get('id')}")
            end_read_transaction(db)
            return

        try:
            refund_order = self.record_refund_order(db, charge, original_order)
        except Exception:
            logger.exception(f"❌ Error recording refund order for charge {charge.get('id')}")
            return

        if original_order.order_type == OrderType.ONE_TIME_PURCHASE:
            revoke_one_time_credits(db, charge, original_order, refund_order.id)
        elif original_order.order_type in SUBSCRIPTION_ORDER_TYPES:
            revoke_subscription_credits(db, charge, original_order)
        else:
            logger.info(f"Order {original_order.id} of type {original_order.order_type.value} has no credits to revoke")
            end_read_transaction(db)

    def find_original_order(self, db: Session, charge: Mapping[str, Any]) -> Optional[Order]:
        """Find the purchase a charge paid for, by payment intent and then by charge id"""
        purchases = db.query(Order).filter(Order.order_type != OrderType.REFUND)

        payment_intent = charge.get("payment_intent")
        if isinstance(payment_intent, Mapping):
            payment_intent = payment_intent.get("id")
        if payment_intent:
            order = purchases.filter(Order.provider_payment_intent_id == payment_intent).first()
            if order is not None:
                return order

        charge_id = charge.get("id")
        if not charge_id:
            return None
        return purchases.filter(Order.provider_charge_id == charge_id).first()

    def record_refund_order(self, db: Session, charge: Mapping[str, Any], original_order: Order) -> Order:
        """
        Record the refund as its own order, once per charge.

        Stripe reports the cumulative refunded amount, so a repeated
        delivery for the same charge updates the existing refund order.
        """
        charge_id = charge.get("id")
        refunded_cents = -abs(int(charge.get("amount_refunded") or 0))

        refund_order = db.query(Order).filter(
            Order.order_type == OrderType.REFUND,
            Order.provider_charge_id == charge_id,
        ).first()

        try:
            if refund_order is None:
                refund_order = Order(
                    id=f"ord_{uuid.uuid4().hex}",
                    user_id=original_order.user_id,
                    plan_id=original_order.plan_id,
                    order_type=OrderType.REFUND,
                    currency=charge.get("currency") or original_order.currency,
                    subscription_id=original_order.subscription_id,
                    provider_payment_intent_id=original_order.provider_payment_intent_id,
                    provider_charge_id=charge_id,
                )
                db.add(refund_order)
            refund_order.amount_total_cents = refunded_cents
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"✅ Recorded refund order {refund_order.id} for charge {charge_id}")
        return refund_order
