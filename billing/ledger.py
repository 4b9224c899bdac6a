"""
Ledger mutation: the single place that decrements a user's credit balance.

Every revocation trigger funnels through revoke_credits(). The balance row is
read with SELECT ... FOR UPDATE, clamped at zero, written back, and an audit
row is appended, all inside one transaction.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from models import CreditLog, CreditLogType, UserBalance
from .models import BalanceKind, RevocationResult

logger = logging.getLogger(__name__)

BALANCE_COLUMNS = {
    BalanceKind.ONE_TIME: "one_time_credits_balance",
    BalanceKind.SUBSCRIPTION: "subscription_credits_balance",
}


def get_user_balance(db: Session, user_id: str) -> Optional[UserBalance]:
    """Unlocked read of a user's balance row"""
    return db.query(UserBalance).filter(UserBalance.user_id == user_id).first()


def lock_user_balance(db: Session, user_id: str) -> Optional[UserBalance]:
    """
    Read a user's balance row under an exclusive row lock.

    populate_existing refreshes an instance the session may already hold
    from an earlier unlocked read.
    """
    return (
        db.query(UserBalance)
        .filter(UserBalance.user_id == user_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def end_read_transaction(db: Session) -> None:
    """
    Close a transaction left open by reads that led to no write.

    On SQLite every transaction holds the database write lock, and on
    PostgreSQL an open read leaves the connection idle in transaction.
    """
    if db.in_transaction():
        db.rollback()


def revoke_credits(
    db: Session,
    user_id: str,
    amount: int,
    *,
    balance: BalanceKind,
    log_type: CreditLogType,
    notes: str,
    clear_monthly: bool = False,
    clear_yearly: bool = False,
    related_order_id: Optional[str] = None,
) -> Optional[RevocationResult]:
    """
    Revoke up to ``amount`` credits from one of the user's balances.

    Args:
        db: Database session; committed on success, rolled back on failure
        user_id: Owner of the balance row
        amount: Credits requested; zero or negative is a no-op
        balance: Which balance to decrement
        log_type: Audit-log entry type
        notes: Free-text audit note
        clear_monthly: Drop the monthly allocation record when credits are revoked
        clear_yearly: Drop the yearly allocation record when credits are revoked
        related_order_id: Order the revocation refers to

    Returns:
        RevocationResult with the amount actually applied, or None when
        there was nothing to do (non-positive amount or no balance row)

    Raises:
        Any persistence error, after rolling back the transaction
    """
    if not amount or amount <= 0:
        end_read_transaction(db)
        return None

    column = BALANCE_COLUMNS[balance]

    try:
        usage = lock_user_balance(db, user_id)
        if usage is None:
            db.rollback()
            logger.warning(f"⚠️ No balance row for user {user_id}; nothing to revoke")
            return None

        current_balance = getattr(usage, column)
        new_balance = max(0, current_balance - amount)
        amount_applied = current_balance - new_balance

        log_entry = None
        if amount_applied > 0:
            setattr(usage, column, new_balance)
            usage.clear_allocation_details(monthly=clear_monthly, yearly=clear_yearly)

            log_entry = CreditLog(
                user_id=user_id,
                amount=-amount_applied,
                one_time_balance_after=usage.one_time_credits_balance,
                subscription_balance_after=usage.subscription_credits_balance,
                type=log_type,
                notes=notes,
                related_order_id=related_order_id,
            )
            db.add(log_entry)

        db.commit()
    except Exception as e:
        logger.error(f"❌ Credit revocation failed for user {user_id}: {str(e)}")
        db.rollback()
        raise

    if amount_applied > 0:
        logger.info(
            f"✅ Revoked {amount_applied}/{amount} {balance.value} credits from user {user_id} "
            f"({log_type.value}), balance now {new_balance}"
        )
    else:
        logger.info(f"{balance.value} balance for user {user_id} already at 0; nothing revoked")

    return RevocationResult(
        user_id=user_id,
        balance=balance,
        amount_requested=amount,
        amount_applied=amount_applied,
        one_time_balance_after=usage.one_time_credits_balance,
        subscription_balance_after=usage.subscription_credits_balance,
        log_id=log_entry.id if log_entry is not None else None,
    )
