"""
Credit revocation entry points for Stripe notifications.

Three triggers take credits back: a subscription ending, a refunded one-time
purchase, and a refunded subscription charge. Each gathers its own facts and
then calls billing.ledger.revoke_credits. Failures are logged and never raised
to the webhook transport.
"""
import logging
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session

from models import CreditLogType, Order, RecurringInterval
from .ledger import end_read_transaction, get_user_balance, revoke_credits
from .models import BalanceAllocations, BalanceKind, RevocationContext, RevocationResult
from .plans import get_one_time_credits, get_plan

logger = logging.getLogger(__name__)

CustomerLookup = Callable[[str], Optional[str]]


def resolve_subscription_revocation(db: Session, plan_id: str, user_id: str) -> Optional[RevocationContext]:
    """
    Work out how many subscription credits a refund of ``plan_id`` takes back.

    Returns:
        RevocationContext, or None when the plan cannot be found
    """
    plan = get_plan(db, plan_id)
    if plan is None:
        logger.error(f"❌ Plan {plan_id} not found while computing revoke context for user {user_id}")
        return None

    usage = get_user_balance(db, user_id)
    if usage is None:
        logger.error(f"❌ No usage data for user {user_id} while computing revoke context")
        return RevocationContext(recurring_interval=plan.recurring_interval)

    allocations = BalanceAllocations.from_jsonb(usage.balance_jsonb)

    if plan.recurring_interval == RecurringInterval.YEAR.value:
        details = allocations.yearly
        return RevocationContext(
            recurring_interval=plan.recurring_interval,
            amount_to_revoke=details.monthly_credits if details else 0,
            clear_yearly=True,
        )

    if plan.recurring_interval == RecurringInterval.MONTH.value:
        details = allocations.monthly
        return RevocationContext(
            recurring_interval=plan.recurring_interval,
            amount_to_revoke=details.monthly_credits if details else 0,
            clear_monthly=True,
        )

    return RevocationContext(recurring_interval=plan.recurring_interval)


def _customer_id(subscription: Mapping[str, Any]) -> Optional[str]:
    customer = subscription.get("customer")
    if isinstance(customer, str):
        return customer
    if isinstance(customer, Mapping):
        return customer.get("id")
    return None


def revoke_remaining_subscription_credits_on_end(
    db: Session,
    subscription: Mapping[str, Any],
    customer_lookup: Optional[CustomerLookup] = None,
) -> Optional[RevocationResult]:
    """
    Revoke whatever subscription credit balance is left when a subscription ends.

    The owning user comes from the subscription metadata, falling back to the
    Stripe customer's metadata.
    """
    subscription_id = subscription.get("id")
    customer_id = _customer_id(subscription)

    if not customer_id:
        logger.error(f"❌ Customer ID missing on subscription {subscription_id}. Cannot revoke.")
        return None

    user_id = (subscription.get("metadata") or {}).get("userId")

    if not user_id:
        if customer_lookup is None:
            from .services import StripeService
            customer_lookup = StripeService().get_customer_user_id
        try:
            user_id = customer_lookup(customer_id)
        except Exception as e:
            logger.error(f"❌ Error retrieving customer {customer_id} for subscription {subscription_id}: {str(e)}")

    if not user_id:
        logger.error(f"❌ Could not determine userId for subscription {subscription_id} end event.")
        return None

    try:
        usage = get_user_balance(db, user_id)
        amount_to_revoke = usage.subscription_credits_balance if usage else 0

        result = None
        if amount_to_revoke > 0:
            result = revoke_credits(
                db,
                user_id,
                amount_to_revoke,
                balance=BalanceKind.SUBSCRIPTION,
                clear_monthly=True,
                clear_yearly=True,
                log_type=CreditLogType.SUBSCRIPTION_ENDED_REVOKE,
                notes=f"Subscription {subscription_id} ended; remaining credits revoked.",
                related_order_id=None,
            )

        logger.info(f"Revoked remaining subscription credits on end for subscription {subscription_id}, user {user_id}")
        return result
    except Exception:
        logger.exception(f"❌ Error revoking remaining credits for subscription {subscription_id}")
        return None
    finally:
        end_read_transaction(db)


def is_full_refund(charge: Mapping[str, Any], original_order: Order) -> bool:
    """A refund is full when the refunded minor units equal the order total"""
    amount_refunded = abs(int(charge.get("amount_refunded") or 0))
    return amount_refunded == original_order.amount_total_cents


def revoke_one_time_credits(
    db: Session,
    charge: Mapping[str, Any],
    original_order: Order,
    refund_order_id: str,
) -> Optional[RevocationResult]:
    """
    Revoke the one-time credits granted by an order that was fully refunded.

    Partial refunds are logged and skipped; credits are never pro-rated.
    """
    plan_id = original_order.plan_id
    user_id = original_order.user_id

    if not is_full_refund(charge, original_order):
        logger.info(
            f"Refund {charge.get('id')} is not a full refund. Skipping credit revocation. "
            f"Refunded: {charge.get('amount_refunded')}, Original Total: {original_order.amount_total_cents}"
        )
        end_read_transaction(db)
        return None

    order_type = original_order.order_type
    try:
        one_time_credits = get_one_time_credits(db, plan_id)
        if one_time_credits is None:
            logger.error(f"❌ Error fetching plan benefits for planId {plan_id} during refund {refund_order_id}")
            return None

        if one_time_credits <= 0:
            logger.info(
                f"No credits defined to revoke for plan {plan_id}, order type "
                f"{order_type.value} on refund {refund_order_id}."
            )
            return None

        result = revoke_credits(
            db,
            user_id,
            one_time_credits,
            balance=BalanceKind.ONE_TIME,
            log_type=CreditLogType.REFUND_REVOKE,
            notes=f"Full refund for order {original_order.id}.",
            related_order_id=original_order.id,
        )
        logger.info(f"✅ Successfully revoked credits for user {user_id} related to refund {refund_order_id}.")
        return result
    except Exception:
        logger.exception(f"❌ Error revoking credits for user {user_id}, refund {refund_order_id}")
        return None
    finally:
        end_read_transaction(db)


def revoke_subscription_credits(
    db: Session,
    charge: Mapping[str, Any],
    original_order: Order,
) -> Optional[RevocationResult]:
    """Revoke the allocation granted for the billing period of a refunded subscription order"""
    user_id = original_order.user_id
    subscription_id = original_order.subscription_id

    try:
        ctx = resolve_subscription_revocation(db, original_order.plan_id, user_id)
        if ctx is None or ctx.amount_to_revoke <= 0:
            return None

        result = revoke_credits(
            db,
            user_id,
            ctx.amount_to_revoke,
            balance=BalanceKind.SUBSCRIPTION,
            clear_monthly=ctx.clear_monthly,
            clear_yearly=ctx.clear_yearly,
            log_type=CreditLogType.REFUND_REVOKE,
            notes=f"Full refund for subscription order {original_order.id}.",
            related_order_id=original_order.id,
        )
        logger.info(
            f"✅ Successfully revoked subscription credits for user {user_id} "
            f"related to subscription {subscription_id} refund (charge {charge.get('id')})."
        )
        return result
    except Exception:
        logger.exception(f"❌ Error during subscription credit revocation for user {user_id}, subscription {subscription_id}")
        return None
    finally:
        end_read_transaction(db)
