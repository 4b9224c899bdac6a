"""
Credit Ledger Revocation Package

Keeps per-user credit balances consistent when Stripe reports that a
subscription ended or a purchase was refunded.

Key Features:
- One locked, transactional mutation path for every revocation
- Revocation amounts derived from plan benefits and allocation snapshots
- Append-only audit log recording the amount actually applied
- Stripe webhook verification and dispatch
- Balance / audit-trail reconciliation
"""

from .config import config
from .ledger import revoke_credits
from .revocation import (
    resolve_subscription_revocation,
    revoke_one_time_credits,
    revoke_remaining_subscription_credits_on_end,
    revoke_subscription_credits,
)
from .services import StripeService

__version__ = "1.0.0"
__title__ = "Credit Ledger"
__description__ = "Concurrency-safe credit revocation for Stripe billing events"

__all__ = [
    "config",
    "revoke_credits",
    "resolve_subscription_revocation",
    "revoke_one_time_credits",
    "revoke_remaining_subscription_credits_on_end",
    "revoke_subscription_credits",
    "StripeService",
]
