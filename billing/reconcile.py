"""
Audit-trail reconciliation: compare each balance row with its latest credit log entry
"""
import logging
from typing import List

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from models import CreditLog, UserBalance

logger = logging.getLogger(__name__)


class BalanceDrift(BaseModel):
    """A balance row that no longer matches the last audited state"""
    user_id: str
    log_id: int
    one_time_balance: int
    one_time_balance_logged: int
    subscription_balance: int
    subscription_balance_logged: int


def find_balance_drift(db: Session) -> List[BalanceDrift]:
    """
    Report users whose current balances differ from the after-balances of
    their most recent credit log entry.

    Users without any log entry have no audited state and are skipped.
    Read-only.
    """
    latest_ids = (
        db.query(func.max(CreditLog.id).label("log_id"))
        .group_by(CreditLog.user_id)
        .subquery()
    )
    rows = (
        db.query(UserBalance, CreditLog)
        .join(CreditLog, CreditLog.user_id == UserBalance.user_id)
        .join(latest_ids, latest_ids.c.log_id == CreditLog.id)
        .order_by(UserBalance.user_id)
        .all()
    )

    drift = []
    for usage, log in rows:
        if (
            usage.one_time_credits_balance != log.one_time_balance_after
            or usage.subscription_credits_balance != log.subscription_balance_after
        ):
            drift.append(BalanceDrift(
                user_id=usage.user_id,
                log_id=log.id,
                one_time_balance=usage.one_time_credits_balance,
                one_time_balance_logged=log.one_time_balance_after,
                subscription_balance=usage.subscription_credits_balance,
                subscription_balance_logged=log.subscription_balance_after,
            ))

    logger.info(f"Checked {len(rows)} audited balances, {len(drift)} drifted")
    return drift
