"""
Canonical Status Vocabulary
Networks and admin actions speak many dialects ("approved", "valid",
"rejected", "void", ...). The core only ever sees the canonical values
below; every boundary translates on the way in.
"""
from enum import Enum
from typing import Dict, Iterable, Optional


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    UNDER_REVIEW = "under_review"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELLED = "cancelled"
    UNDER_REVIEW = "under_review"


class MoneyState(str, Enum):
    """Which wallet bucket a transaction's commission currently sits in"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Default postback vocabulary; networks may extend it
CONFIRMED_WORDS = frozenset({"approved", "confirmed", "valid", "paid", "success", "successful"})
CANCELLED_WORDS = frozenset({"cancelled", "canceled", "rejected", "invalid", "void", "failed", "fraud", "reversed"})

# Admin actions accept the canonical values plus the legacy synonyms
ADMIN_STATUS_MAP: Dict[str, TransactionStatus] = {
    "pending": TransactionStatus.PENDING,
    "under_review": TransactionStatus.UNDER_REVIEW,
    "confirmed": TransactionStatus.CONFIRMED,
    "approved": TransactionStatus.CONFIRMED,
    "cancelled": TransactionStatus.CANCELLED,
    "rejected": TransactionStatus.CANCELLED,
    "reversed": TransactionStatus.CANCELLED,
}


def map_network_status(
    raw: Optional[str],
    confirmed_words: Iterable[str] = CONFIRMED_WORDS,
    cancelled_words: Iterable[str] = CANCELLED_WORDS,
) -> TransactionStatus:
    """Translate a raw postback status; anything unrecognized stays pending."""
    s = str(raw or "").strip().lower()
    if s in confirmed_words:
        return TransactionStatus.CONFIRMED
    if s in cancelled_words:
        return TransactionStatus.CANCELLED
    return TransactionStatus.PENDING


def map_admin_status(raw: Optional[str]) -> Optional[TransactionStatus]:
    return ADMIN_STATUS_MAP.get(str(raw or "").strip().lower())


def money_state(status: Optional[str]) -> MoneyState:
    """under_review is held in the pending bucket"""
    s = str(status or TransactionStatus.PENDING.value)
    if s == TransactionStatus.CONFIRMED.value:
        return MoneyState.CONFIRMED
    if s == TransactionStatus.CANCELLED.value:
        return MoneyState.CANCELLED
    return MoneyState.PENDING


def commission_status_for(status: Optional[str]) -> CommissionStatus:
    """Commission record status mirroring a transaction status"""
    s = str(status or TransactionStatus.PENDING.value)
    if s == TransactionStatus.UNDER_REVIEW.value:
        return CommissionStatus.UNDER_REVIEW
    state = money_state(s)
    if state == MoneyState.CONFIRMED:
        return CommissionStatus.CONFIRMED
    if state == MoneyState.CANCELLED:
        return CommissionStatus.CANCELLED
    return CommissionStatus.PENDING
