"""
Wallet Transition Planning
Turns (previous status, new status, previous amount, new amount) into the
exact $inc deltas for a user's wallet buckets and affiliate counters.

Lifecycle for money: pending -> {confirmed, cancelled}; confirmed -> cancelled.
under_review sits in the pending bucket. Amounts are abs(commission).

    new pending            pending += a, total += a
    new confirmed          confirmed += a, available += a, total += a
    pending -> pending     pending += (b - a), total += (b - a)
    pending -> confirmed   pending -= a, confirmed += b, available += b, total += (b - a)
    pending -> cancelled   pending -= a
    confirmed -> cancelled confirmed -= a, available -= a
    confirmed -> confirmed nothing (amount revisions ignored)
    cancelled -> cancelled nothing

a = amount currently credited, b = newly reported amount. Anything else
raises UnsupportedTransitionError.

affiliate_info.pending_commissions moves with pending_cashback and
affiliate_info.total_commissions moves with total_earnings.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict

from earnko.core.commission_rules import round_money
from earnko.core.errors import UnsupportedTransitionError
from earnko.core.statuses import MoneyState, money_state

PENDING_CASHBACK = "wallet.pending_cashback"
CONFIRMED_CASHBACK = "wallet.confirmed_cashback"
AVAILABLE_BALANCE = "wallet.available_balance"
TOTAL_EARNINGS = "wallet.total_earnings"
REFERRAL_EARNINGS = "wallet.referral_earnings"
AFFILIATE_PENDING = "affiliate_info.pending_commissions"
AFFILIATE_TOTAL = "affiliate_info.total_commissions"


@dataclass
class WalletPlan:
    deltas: Dict[str, float] = field(default_factory=dict)
    # Commission amount the transaction represents after this step
    settled_amount: float = 0.0
    became_confirmed: bool = False
    reversed: bool = False
    ignored_revision: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.deltas


def _diff(new: float, old: float) -> float:
    return round_money(Decimal(str(new)) - Decimal(str(old)))


def _build(pairs) -> Dict[str, float]:
    """Merge (field, amount) pairs, dropping zero deltas."""
    out: Dict[str, Decimal] = {}
    for key, amount in pairs:
        out[key] = out.get(key, Decimal(0)) + Decimal(str(amount))
    return {k: round_money(v) for k, v in out.items() if v != 0}


def plan_new(status: str, amount: float) -> WalletPlan:
    a = round_money(abs(amount or 0))
    state = money_state(status)

    if state == MoneyState.PENDING:
        deltas = _build([
            (PENDING_CASHBACK, a), (TOTAL_EARNINGS, a),
            (AFFILIATE_PENDING, a), (AFFILIATE_TOTAL, a),
        ])
        return WalletPlan(deltas=deltas, settled_amount=a)

    if state == MoneyState.CONFIRMED:
        deltas = _build([
            (CONFIRMED_CASHBACK, a), (AVAILABLE_BALANCE, a), (TOTAL_EARNINGS, a),
            (AFFILIATE_TOTAL, a),
        ])
        return WalletPlan(deltas=deltas, settled_amount=a, became_confirmed=True)

    # Created already cancelled: recorded, never credited
    return WalletPlan(settled_amount=a)


def plan_transition(prev_status: str, new_status: str, prev_amount: float, new_amount: float) -> WalletPlan:
    prev_state = money_state(prev_status)
    new_state = money_state(new_status)
    a = round_money(abs(prev_amount or 0))
    b = round_money(abs(new_amount or 0))

    if prev_state == MoneyState.PENDING and new_state == MoneyState.PENDING:
        d = _diff(b, a)
        deltas = _build([
            (PENDING_CASHBACK, d), (TOTAL_EARNINGS, d),
            (AFFILIATE_PENDING, d), (AFFILIATE_TOTAL, d),
        ])
        return WalletPlan(deltas=deltas, settled_amount=b)

    if prev_state == MoneyState.PENDING and new_state == MoneyState.CONFIRMED:
        d = _diff(b, a)
        deltas = _build([
            (PENDING_CASHBACK, -a), (AFFILIATE_PENDING, -a),
            (CONFIRMED_CASHBACK, b), (AVAILABLE_BALANCE, b),
            (TOTAL_EARNINGS, d), (AFFILIATE_TOTAL, d),
        ])
        return WalletPlan(deltas=deltas, settled_amount=b, became_confirmed=True)

    if prev_state == MoneyState.PENDING and new_state == MoneyState.CANCELLED:
        deltas = _build([(PENDING_CASHBACK, -a), (AFFILIATE_PENDING, -a)])
        return WalletPlan(deltas=deltas, settled_amount=a)

    if prev_state == MoneyState.CONFIRMED and new_state == MoneyState.CANCELLED:
        deltas = _build([(CONFIRMED_CASHBACK, -a), (AVAILABLE_BALANCE, -a)])
        return WalletPlan(deltas=deltas, settled_amount=a, reversed=True)

    if prev_state == new_state:
        # confirmed -> confirmed or cancelled -> cancelled
        return WalletPlan(settled_amount=a, ignored_revision=(a != b))

    raise UnsupportedTransitionError(
        f"Unsupported status transition {prev_status} -> {new_status}",
        data={"from": prev_status, "to": new_status},
    )
