import os
import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the module-level engine off any real database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_API_KEY", "")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from database import DatabaseManager, create_db_engine  # noqa: E402
from models import CreditLog, Order, OrderType, PricingPlan, UserBalance  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    DatabaseManager.create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_balance(db):
    def _make(user_id="user_1", one_time=0, subscription=0, allocations=None):
        usage = UserBalance(
            user_id=user_id,
            one_time_credits_balance=one_time,
            subscription_credits_balance=subscription,
            balance_jsonb=allocations or {},
        )
        db.add(usage)
        db.commit()
        return usage
    return _make


@pytest.fixture
def make_plan(db):
    def _make(plan_id="plan_1", recurring_interval=None, benefits=None):
        plan = PricingPlan(id=plan_id, recurring_interval=recurring_interval, benefits_jsonb=benefits or {})
        db.add(plan)
        db.commit()
        return plan
    return _make


@pytest.fixture
def make_order(db):
    def _make(
        order_id="order_1",
        user_id="user_1",
        plan_id="plan_1",
        order_type=OrderType.ONE_TIME_PURCHASE,
        amount_total_cents=1000,
        subscription_id=None,
        payment_intent=None,
        charge_id=None,
    ):
        order = Order(
            id=order_id,
            user_id=user_id,
            plan_id=plan_id,
            order_type=order_type,
            amount_total_cents=amount_total_cents,
            subscription_id=subscription_id,
            provider_payment_intent_id=payment_intent,
            provider_charge_id=charge_id,
        )
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture
def balance_of(db):
    """Re-read a balance row from the database"""
    def _get(user_id="user_1"):
        return db.query(UserBalance).filter(UserBalance.user_id == user_id).populate_existing().first()
    return _get


@pytest.fixture
def logs_of(db):
    def _get(user_id="user_1"):
        return db.query(CreditLog).filter(CreditLog.user_id == user_id).order_by(CreditLog.id).all()
    return _get
