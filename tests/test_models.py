"""Tests for plan benefit lookups and the typed JSON views."""

from billing.models import BalanceAllocations, PlanBenefits
from billing.plans import get_one_time_credits, get_plan_benefits
from models import UserBalance


def test_allocations_parse_source_keys():
    allocations = BalanceAllocations.from_jsonb({
        "monthlyAllocationDetails": {"monthlyCredits": 30, "relatedOrderId": "order_1"},
        "yearlyAllocationDetails": {"monthlyCredits": 100},
    })
    assert allocations.monthly.monthly_credits == 30
    assert allocations.yearly.monthly_credits == 100


def test_allocations_empty_and_malformed():
    assert BalanceAllocations.from_jsonb(None).monthly is None
    assert BalanceAllocations.from_jsonb({}).yearly is None
    assert BalanceAllocations.from_jsonb({"yearlyAllocationDetails": "nope"}).yearly is None


def test_plan_benefits_defaults():
    assert PlanBenefits.from_jsonb(None).one_time_credits == 0
    assert PlanBenefits.from_jsonb({"oneTimeCredits": "250"}).one_time_credits == 250
    assert PlanBenefits.from_jsonb({"oneTimeCredits": [1]}).one_time_credits == 0


def test_get_plan_benefits(db, make_plan):
    make_plan(benefits={"oneTimeCredits": 100, "features": ["priority"]})

    benefits = get_plan_benefits(db, "plan_1")

    assert benefits.one_time_credits == 100
    assert get_one_time_credits(db, "plan_1") == 100
    assert get_plan_benefits(db, "missing") is None
    assert get_one_time_credits(db, None) is None


def test_clear_allocation_details_replaces_value():
    usage = UserBalance(
        user_id="user_1",
        balance_jsonb={"monthlyAllocationDetails": {"monthlyCredits": 1}, "yearlyAllocationDetails": {}},
    )
    original = usage.balance_jsonb

    usage.clear_allocation_details(monthly=True)

    assert usage.balance_jsonb == {"yearlyAllocationDetails": {}}
    assert usage.balance_jsonb is not original
    assert "monthlyAllocationDetails" in original


def test_malformed_allocation_does_not_hide_its_sibling():
    allocations = BalanceAllocations.from_jsonb({
        "monthlyAllocationDetails": {"monthlyCredits": 30},
        "yearlyAllocationDetails": {"monthlyCredits": None},
    })
    assert allocations.monthly.monthly_credits == 30
    assert allocations.yearly is None


def test_unrelated_plan_benefit_does_not_hide_one_time_credits():
    benefits = PlanBenefits.from_jsonb({"oneTimeCredits": 100, "monthlyCredits": "unlimited"})
    assert benefits.one_time_credits == 100
