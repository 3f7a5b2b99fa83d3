"""
Commission arithmetic and rule precedence building blocks
"""
import pytest

from earnko.core.commission_rules import (
    CommissionRule,
    category_rule,
    compute_commission,
    product_override_rule,
    round_money,
    store_default_rule,
)


@pytest.mark.parametrize("value,expected", [(0.125, 0.13), (2.675, 2.68), (1.005, 1.01), (-0.125, -0.13), (10, 10.0)])
def test_round_money_half_up(value, expected):
    assert round_money(value) == expected


def test_percentage_commission():
    assert compute_commission(1999, CommissionRule(rate=7.5)) == 149.93


def test_percentage_commission_capped():
    assert compute_commission(10000, CommissionRule(rate=5, max_cap=200)) == 200.0


def test_fixed_commission_ignores_order_amount():
    assert compute_commission(50, CommissionRule(rate=35, type="fixed")) == 35.0
    assert compute_commission(50, CommissionRule(rate=35, type="fixed", max_cap=20)) == 20.0


def test_zero_order_amount():
    assert compute_commission(0, CommissionRule(rate=10)) == 0.0


def test_product_override_requires_rate():
    assert product_override_rule({"commission_override": {"rate": None}}) is None
    assert product_override_rule(None) is None
    rule = product_override_rule({"commission_override": {"rate": 12, "type": "fixed"}, "category_key": "shoes"})
    assert rule.source == "product_override"
    assert (rule.rate, rule.type, rule.category_key) == (12.0, "fixed", "shoes")


def test_category_rule_scope():
    assert category_rule({"store_id": "s1", "category_key": "tv", "commission_rate": 3}).source == "category_store"
    assert category_rule({"store_id": None, "category_key": "tv", "commission_rate": 3}).source == "category_global"
    assert category_rule(None) is None


def test_store_default_treats_zero_cap_as_uncapped():
    rule = store_default_rule({"commission_rate": 4, "commission_type": "percentage", "max_commission": 0})
    assert rule.max_cap is None
    assert store_default_rule(None).rate == 0.0


def test_describe_drops_empty_fields():
    assert CommissionRule(rate=5).describe() == {"rate": 5, "type": "percentage", "source": "store_default"}
