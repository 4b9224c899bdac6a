"""Tests for the ledger mutation (billing.ledger.revoke_credits)."""

import threading
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from billing.ledger import revoke_credits
from billing.models import BalanceKind
from models import CreditLogType


def _revoke(db, amount, **kwargs):
    params = {
        "balance": BalanceKind.SUBSCRIPTION,
        "log_type": CreditLogType.REFUND_REVOKE,
        "notes": "test revoke",
    }
    params.update(kwargs)
    return revoke_credits(db, "user_1", amount, **params)


class TestRevokeCredits:

    def test_revokes_requested_amount(self, db, make_balance, balance_of, logs_of):
        make_balance(one_time=5, subscription=50)

        result = _revoke(db, 20, related_order_id="order_9")

        assert result.amount_requested == 20
        assert result.amount_applied == 20
        assert result.subscription_balance_after == 30
        usage = balance_of()
        assert usage.subscription_credits_balance == 30
        assert usage.one_time_credits_balance == 5

        logs = logs_of()
        assert len(logs) == 1
        assert logs[0].amount == -20
        assert logs[0].subscription_balance_after == 30
        assert logs[0].one_time_balance_after == 5
        assert logs[0].type == CreditLogType.REFUND_REVOKE
        assert logs[0].related_order_id == "order_9"
        assert result.log_id == logs[0].id

    def test_clamps_at_zero_and_logs_applied_amount(self, db, make_balance, balance_of, logs_of):
        make_balance(subscription=10)

        result = _revoke(db, 75)

        assert result.amount_applied == 10
        assert balance_of().subscription_credits_balance == 0
        assert [log.amount for log in logs_of()] == [-10]

    def test_zero_balance_writes_nothing(self, db, make_balance, balance_of, logs_of):
        make_balance(subscription=0, allocations={"monthlyAllocationDetails": {"monthlyCredits": 30}})

        result = _revoke(db, 30, clear_monthly=True)

        assert result.amount_applied == 0
        assert result.log_id is None
        usage = balance_of()
        assert usage.subscription_credits_balance == 0
        assert usage.balance_jsonb == {"monthlyAllocationDetails": {"monthlyCredits": 30}}
        assert logs_of() == []

    @pytest.mark.parametrize("amount", [0, -5, None])
    def test_non_positive_amount_is_noop(self, db, make_balance, balance_of, logs_of, amount):
        make_balance(subscription=40)

        assert _revoke(db, amount) is None
        assert balance_of().subscription_credits_balance == 40
        assert logs_of() == []

    def test_non_positive_amount_ends_open_read(self, db, make_balance, balance_of):
        make_balance(subscription=40)
        balance_of()
        assert db.in_transaction()

        assert _revoke(db, 0) is None
        assert not db.in_transaction()

    def test_missing_balance_row_is_noop(self, db, logs_of):
        assert _revoke(db, 10) is None
        assert not db.in_transaction()
        assert logs_of() == []

    def test_one_time_balance_is_independent(self, db, make_balance, balance_of, logs_of):
        make_balance(one_time=100, subscription=50)

        result = _revoke(db, 100, balance=BalanceKind.ONE_TIME)

        assert result.one_time_balance_after == 0
        usage = balance_of()
        assert usage.one_time_credits_balance == 0
        assert usage.subscription_credits_balance == 50
        log = logs_of()[0]
        assert (log.one_time_balance_after, log.subscription_balance_after) == (0, 50)

    def test_clears_yearly_allocation_regardless_of_amount(self, db, make_balance, balance_of):
        make_balance(
            subscription=7,
            allocations={
                "monthlyAllocationDetails": {"monthlyCredits": 30},
                "yearlyAllocationDetails": {"monthlyCredits": 500},
            },
        )

        _revoke(db, 500, clear_yearly=True)

        assert balance_of().balance_jsonb == {"monthlyAllocationDetails": {"monthlyCredits": 30}}

    def test_clears_both_allocations(self, db, make_balance, balance_of):
        make_balance(
            subscription=20,
            allocations={
                "monthlyAllocationDetails": {"monthlyCredits": 30},
                "yearlyAllocationDetails": {"monthlyCredits": 40},
                "lastResetAt": "2026-01-01",
            },
        )

        _revoke(db, 5, clear_monthly=True, clear_yearly=True)

        assert balance_of().balance_jsonb == {"lastResetAt": "2026-01-01"}

    def test_persistence_failure_rolls_back_and_raises(self, db, make_balance, balance_of, logs_of):
        make_balance(subscription=50)
        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))

        with mock.patch.object(db, "commit", side_effect=failure):
            with pytest.raises(OperationalError):
                _revoke(db, 20)

        assert balance_of().subscription_credits_balance == 50
        assert logs_of() == []


class TestConcurrentRevocation:

    def _run_concurrently(self, session_factory, amounts):
        barrier = threading.Barrier(len(amounts))
        results, errors = [], []

        def worker(amount):
            session = session_factory()
            try:
                barrier.wait()
                results.append(revoke_credits(
                    session,
                    "user_1",
                    amount,
                    balance=BalanceKind.SUBSCRIPTION,
                    log_type=CreditLogType.REFUND_REVOKE,
                    notes="concurrent",
                ))
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(amount,)) for amount in amounts]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return results, errors

    def test_two_half_revocations_never_go_negative(self, session_factory, make_balance, balance_of, logs_of):
        make_balance(subscription=100)

        results, errors = self._run_concurrently(session_factory, [60, 60])

        assert errors == []
        assert sorted(r.amount_applied for r in results) == [40, 60]
        assert balance_of().subscription_credits_balance == 0
        assert sorted(log.amount for log in logs_of()) == [-60, -40]

    def test_concurrent_revocations_sum(self, session_factory, make_balance, balance_of, logs_of):
        make_balance(subscription=100)

        results, errors = self._run_concurrently(session_factory, [30, 30])

        assert errors == []
        assert balance_of().subscription_credits_balance == 40
        assert sorted(log.subscription_balance_after for log in logs_of()) == [40, 70]
