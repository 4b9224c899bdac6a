import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum, Index, Integer, JSON, String, Text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# Create Base here to avoid circular imports
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development)
JSONType = JSON().with_variant(JSONB(), "postgresql")

MONTHLY_ALLOCATION_KEY = "monthlyAllocationDetails"
YEARLY_ALLOCATION_KEY = "yearlyAllocationDetails"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecurringInterval(str, enum.Enum):
    MONTH = "month"
    YEAR = "year"


class OrderType(str, enum.Enum):
    ONE_TIME_PURCHASE = "one_time_purchase"
    SUBSCRIPTION_INITIAL = "subscription_initial"
    RECURRING = "recurring"
    REFUND = "refund"


class CreditLogType(str, enum.Enum):
    """Audit-log entry types; grant types are written by the purchase flow"""
    ONE_TIME_PURCHASE = "one_time_purchase"
    SUBSCRIPTION_GRANT = "subscription_grant"
    SUBSCRIPTION_ENDED_REVOKE = "subscription_ended_revoke"
    REFUND_REVOKE = "refund_revoke"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserBalance(Base):
    """
    Per-user credit balances. One row per user, mutated on the revocation
    path only through billing.ledger.revoke_credits.
    """
    __tablename__ = "usage"
    __table_args__ = (
        CheckConstraint("one_time_credits_balance >= 0", name="ck_usage_one_time_non_negative"),
        CheckConstraint("subscription_credits_balance >= 0", name="ck_usage_subscription_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)

    one_time_credits_balance = Column(Integer, default=0, nullable=False)
    subscription_credits_balance = Column(Integer, default=0, nullable=False)

    # Allocation snapshot: {"monthlyAllocationDetails": {...}, "yearlyAllocationDetails": {...}}
    balance_jsonb = Column(JSONType, default=dict, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<UserBalance(user_id={self.user_id}, one_time={self.one_time_credits_balance}, "
            f"subscription={self.subscription_credits_balance})>"
        )

    def clear_allocation_details(self, monthly: bool = False, yearly: bool = False) -> None:
        """
        Drop allocation-detail records from the snapshot.

        The JSON value is replaced rather than edited in place so the ORM
        sees the change.
        """
        if not (monthly or yearly):
            return
        details = dict(self.balance_jsonb or {})
        if yearly:
            details.pop(YEARLY_ALLOCATION_KEY, None)
        if monthly:
            details.pop(MONTHLY_ALLOCATION_KEY, None)
        self.balance_jsonb = details

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "one_time_credits_balance": self.one_time_credits_balance,
            "subscription_credits_balance": self.subscription_credits_balance,
            "balance_jsonb": self.balance_jsonb or {},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class CreditLog(Base):
    """
    Append-only audit trail. One row per balance mutation; amount is signed
    and records what was actually applied.
    """
    __tablename__ = "credit_logs"
    __table_args__ = (
        Index("ix_credit_logs_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # negative = revocation
    one_time_balance_after = Column(Integer, nullable=False)
    subscription_balance_after = Column(Integer, nullable=False)

    type = Column(
        Enum(CreditLogType, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    # Back-reference only, orders are owned by the purchase flow
    related_order_id = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CreditLog(id={self.id}, user_id={self.user_id}, amount={self.amount}, type={self.type.value})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "one_time_balance_after": self.one_time_balance_after,
            "subscription_balance_after": self.subscription_balance_after,
            "type": self.type.value,
            "notes": self.notes,
            "related_order_id": self.related_order_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PricingPlan(Base):
    """Pricing plan; read-only for the revocation path"""
    __tablename__ = "pricing_plans"

    id = Column(String(64), primary_key=True)
    recurring_interval = Column(String(16), nullable=True)  # month, year, or NULL for one-time plans
    benefits_jsonb = Column(JSONType, default=dict, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PricingPlan(id={self.id}, interval={self.recurring_interval})>"


class Order(Base):
    """Purchase order; amounts are integer minor units (cents)"""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    plan_id = Column(String(64), nullable=True)
    order_type = Column(
        Enum(OrderType, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
    )
    amount_total_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="usd")

    subscription_id = Column(String(128), nullable=True)
    provider_payment_intent_id = Column(String(128), nullable=True, index=True)
    provider_charge_id = Column(String(128), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, user_id={self.user_id}, type={self.order_type.value}, total={self.amount_total_cents})>"
