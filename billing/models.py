"""
Pydantic models for plan benefits, allocation snapshots and revocation results
"""
import logging
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from models import MONTHLY_ALLOCATION_KEY, YEARLY_ALLOCATION_KEY

logger = logging.getLogger(__name__)


class BalanceKind(str, Enum):
    """Which of the two per-user balances a mutation targets"""
    ONE_TIME = "one_time"
    SUBSCRIPTION = "subscription"


class AllocationDetails(BaseModel):
    """
    One recurring allocation. Yearly allocations also store their amount
    under ``monthlyCredits``: the monthly-equivalent grant made at
    subscription start.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    monthly_credits: int = Field(default=0, alias="monthlyCredits")


def _allocation_details(raw: Mapping[str, Any], key: str) -> Optional[AllocationDetails]:
    value = raw.get(key)
    if value is None:
        return None
    try:
        return AllocationDetails.model_validate(value)
    except ValidationError as e:
        logger.warning(f"⚠️ Ignoring malformed {key}: {e.error_count()} error(s)")
        return None


class BalanceAllocations(BaseModel):
    """
    Typed view of UserBalance.balance_jsonb.

    Each allocation record is read on its own, so a malformed record never
    hides its sibling.
    """
    model_config = ConfigDict(populate_by_name=True)

    monthly: Optional[AllocationDetails] = Field(default=None, alias=MONTHLY_ALLOCATION_KEY)
    yearly: Optional[AllocationDetails] = Field(default=None, alias=YEARLY_ALLOCATION_KEY)

    @classmethod
    def from_jsonb(cls, raw: Any) -> "BalanceAllocations":
        if not raw:
            return cls()
        if not isinstance(raw, Mapping):
            logger.warning(f"⚠️ Ignoring allocation snapshot of type {type(raw).__name__}")
            return cls()
        return cls(
            monthly=_allocation_details(raw, MONTHLY_ALLOCATION_KEY),
            yearly=_allocation_details(raw, YEARLY_ALLOCATION_KEY),
        )


class PlanBenefits(BaseModel):
    """Typed view of PricingPlan.benefits_jsonb; only the one-time grant is read"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    one_time_credits: int = Field(default=0, alias="oneTimeCredits")

    @classmethod
    def from_jsonb(cls, raw: Any) -> "PlanBenefits":
        if not raw:
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"⚠️ Ignoring malformed plan benefits: {e.error_count()} error(s)")
            return cls()


class RevocationContext(BaseModel):
    """How much subscription credit a refund takes back, and which allocations it spends"""
    recurring_interval: Optional[str] = None
    amount_to_revoke: int = 0
    clear_monthly: bool = False
    clear_yearly: bool = False


class RevocationResult(BaseModel):
    """Outcome of one ledger mutation"""
    user_id: str
    balance: BalanceKind
    amount_requested: int
    amount_applied: int
    one_time_balance_after: int
    subscription_balance_after: int
    log_id: Optional[int] = None
