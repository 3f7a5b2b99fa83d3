"""
Commission Rules
Rule precedence and amount arithmetic. Lookups live in the commission
engine; this module only decides and computes.

Precedence (first match wins):
    1. product override       (product.commission_override.rate set)
    2. category rule, store   (category_commissions, store_id = store)
    3. category rule, global  (category_commissions, store_id = None)
    4. store default          (store.commission_rate / type / max_commission)
"""
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommissionRule:
    rate: float
    type: str = "percentage"
    max_cap: Optional[float] = None
    source: str = "store_default"
    rule_id: Optional[str] = None
    category_key: Optional[str] = None

    def describe(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def round_money(value: Any) -> float:
    """Round half-up to 2 decimals (0.125 -> 0.13, 2.675 -> 2.68)."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def compute_commission(order_amount: float, rule: CommissionRule) -> float:
    """
    percentage: order_amount * rate / 100
    fixed:      rate
    then min(amount, max_cap) when a cap is set, then round half-up.
    """
    rate = Decimal(str(rule.rate or 0))
    if rule.type == "fixed":
        amount = rate
    else:
        amount = Decimal(str(order_amount or 0)) * rate / Decimal(100)

    if rule.max_cap is not None:
        amount = min(amount, Decimal(str(rule.max_cap)))

    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def product_override_rule(product: Optional[Dict[str, Any]]) -> Optional[CommissionRule]:
    override = (product or {}).get("commission_override") or {}
    if override.get("rate") is None:
        return None
    return CommissionRule(
        rate=float(override["rate"]),
        type=override.get("type") or "percentage",
        max_cap=override.get("max_cap"),
        source="product_override",
        category_key=(product or {}).get("category_key") or None,
    )


def category_rule(doc: Optional[Dict[str, Any]]) -> Optional[CommissionRule]:
    if not doc:
        return None
    return CommissionRule(
        rate=float(doc.get("commission_rate") or 0),
        type=doc.get("commission_type") or "percentage",
        max_cap=doc.get("max_cap"),
        source="category_store" if doc.get("store_id") else "category_global",
        rule_id=doc.get("rule_id"),
        category_key=doc.get("category_key"),
    )


def store_default_rule(store: Optional[Dict[str, Any]]) -> CommissionRule:
    store = store or {}
    return CommissionRule(
        rate=float(store.get("commission_rate") or 0),
        type=store.get("commission_type") or "percentage",
        # 0 means "no cap" on stores
        max_cap=store.get("max_commission") or None,
        source="store_default",
    )
