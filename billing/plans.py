"""
Plan benefit lookups used to size revocations
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from models import PricingPlan
from .models import PlanBenefits

logger = logging.getLogger(__name__)


def get_plan(db: Session, plan_id: Optional[str]) -> Optional[PricingPlan]:
    """Fetch a pricing plan by id, or None when it does not exist"""
    if not plan_id:
        return None
    return db.query(PricingPlan).filter(PricingPlan.id == plan_id).first()


def get_plan_benefits(db: Session, plan_id: Optional[str]) -> Optional[PlanBenefits]:
    """
    Resolve the benefit definition for a plan.

    Args:
        db: Database session
        plan_id: Pricing plan id

    Returns:
        PlanBenefits, or None when the plan cannot be found
    """
    plan = get_plan(db, plan_id)
    if plan is None:
        return None
    return PlanBenefits.from_jsonb(plan.benefits_jsonb)


def get_one_time_credits(db: Session, plan_id: Optional[str]) -> Optional[int]:
    """One-time credit grant of a plan (None if the plan is missing)"""
    benefits = get_plan_benefits(db, plan_id)
    if benefits is None:
        return None
    return benefits.one_time_credits
