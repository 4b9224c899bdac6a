"""
Reconciliation check for the credit ledger.
Compares every balance row with the after-balances of its latest credit log
entry and prints the users that drifted. Read-only; exits non-zero on drift.
"""
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from billing.config import configure_logging
from billing.reconcile import find_balance_drift
from database import SessionLocal


def main() -> int:
    configure_logging()
    db = SessionLocal()
    try:
        print("Reconciling balances against credit logs...")
        drift = find_balance_drift(db)

        for row in drift:
            print(
                f"  {row.user_id}: one-time {row.one_time_balance} (logged {row.one_time_balance_logged}), "
                f"subscription {row.subscription_balance} (logged {row.subscription_balance_logged}), "
                f"last log #{row.log_id}"
            )

        if drift:
            print(f"Found {len(drift)} drifted balance(s)")
            return 1
        print("All audited balances match their credit logs")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
