"""
Postback Network Profiles
Each network names the same concepts differently. A profile is an ordered
alias list per canonical field, evaluated first-match-wins, plus the
network's status vocabulary. Every network feeds the same ingester.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from earnko.core.statuses import CANCELLED_WORDS, CONFIRMED_WORDS, TransactionStatus, map_network_status


@dataclass(frozen=True)
class NetworkProfile:
    name: str
    click_id_keys: Tuple[str, ...]
    order_id_keys: Tuple[str, ...]
    sale_amount_keys: Tuple[str, ...]
    commission_keys: Tuple[str, ...]
    status_keys: Tuple[str, ...] = ("status",)
    currency_keys: Tuple[str, ...] = ("currency",)
    # Extra keys copied verbatim into the transaction's tracking_data
    context_keys: Tuple[str, ...] = ()
    confirmed_words: FrozenSet[str] = CONFIRMED_WORDS
    cancelled_words: FrozenSet[str] = CANCELLED_WORDS
    default_currency: str = "INR"


@dataclass
class NormalizedPostback:
    network: str
    click_id: Optional[str]
    order_id: Optional[str]
    sale_amount: float
    # None when the postback carries no commission field at all
    commission: Optional[float]
    status: TransactionStatus
    raw_status: Optional[str]
    currency: str
    context: Dict[str, Any] = field(default_factory=dict)


def first_present(payload: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[Any]:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_amount(value: Any, default: float = 0.0) -> float:
    """Coerce a postback amount; unparseable or non-finite values become `default`."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    return n if math.isfinite(n) else default


def _as_text(value: Any) -> Optional[str]:
    return str(value).strip() if value is not None else None


def normalize_postback(profile: NetworkProfile, payload: Mapping[str, Any]) -> NormalizedPostback:
    raw_commission = first_present(payload, profile.commission_keys)
    raw_status = first_present(payload, profile.status_keys)

    return NormalizedPostback(
        network=profile.name,
        click_id=_as_text(first_present(payload, profile.click_id_keys)),
        order_id=_as_text(first_present(payload, profile.order_id_keys)),
        sale_amount=parse_amount(first_present(payload, profile.sale_amount_keys)),
        commission=None if raw_commission is None else parse_amount(raw_commission),
        status=map_network_status(raw_status, profile.confirmed_words, profile.cancelled_words),
        raw_status=_as_text(raw_status),
        currency=str(first_present(payload, profile.currency_keys) or profile.default_currency),
        context={k: payload[k] for k in profile.context_keys if payload.get(k) not in (None, "")},
    )


# ============================================================================
# NETWORKS
# ============================================================================

CUELINKS = NetworkProfile(
    name="cuelinks",
    click_id_keys=("subid", "sub_id", "sid"),
    order_id_keys=("order_id", "orderid", "oid"),
    sale_amount_keys=("sale_amount", "amount", "order_amount"),
    commission_keys=("commission", "payout", "earnings"),
    context_keys=("campaign_id", "channel_id"),
    confirmed_words=frozenset({"confirmed", "approved", "valid", "paid"}),
    cancelled_words=frozenset({"cancelled", "rejected", "invalid", "void"}),
)

EXTRAPE = NetworkProfile(
    name="extrape",
    click_id_keys=("subid", "sub_id", "sid", "click_id", "clickid", "affExtParam2"),
    order_id_keys=("order_id", "orderid", "oid", "transaction_id", "txn_id", "txnid", "sale_id"),
    sale_amount_keys=("sale_amount", "amount", "order_amount", "total"),
    commission_keys=("commission", "payout", "earnings", "reward"),
    status_keys=("status", "conversion_status", "state"),
    currency_keys=("currency", "curr"),
    context_keys=("affid", "affExtParam1"),
)

# p1 carries our click id (set through adnParams at link build time);
# Trackier's own click_id macro is only a fallback
TRACKIER = NetworkProfile(
    name="trackier",
    click_id_keys=("p1", "click_id", "clickid", "cid", "click"),
    order_id_keys=("txn_id", "txnid", "transaction_id", "order_id", "orderid", "oid"),
    sale_amount_keys=("sale_amount", "conv_revenue", "amount", "original_sale_amount"),
    commission_keys=("payout", "commission", "earnings"),
    status_keys=("conversion_status", "status"),
    currency_keys=("currency", "conv_rp_currency", "original_sale_currency"),
    context_keys=("campaign_id", "camp_id", "click_id"),
)

REALCASH = NetworkProfile(
    name="realcash",
    click_id_keys=("click_id", "clickid", "subid", "sub_id", "subid1", "subid2"),
    order_id_keys=("order_id", "orderid", "transaction_id", "txn_id", "txnid"),
    sale_amount_keys=("order_amount", "sale_amount", "amount"),
    commission_keys=("payout", "commission", "earnings"),
    status_keys=("status", "conversion_status", "state"),
    currency_keys=("order_currency", "currency"),
)

NETWORK_PROFILES: Dict[str, NetworkProfile] = {p.name: p for p in (CUELINKS, EXTRAPE, TRACKIER, REALCASH)}


def get_profile(network: str) -> Optional[NetworkProfile]:
    return NETWORK_PROFILES.get(str(network or "").strip().lower())
