"""
Referral Service
Bonus for the referrer when a referred user's transaction is confirmed,
reversed if that transaction is later cancelled.
"""
import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from earnko import config
from earnko.core.commission_rules import round_money
from earnko.core.statuses import TransactionStatus
from earnko.core.wallet_transitions import AVAILABLE_BALANCE, REFERRAL_EARNINGS
from earnko.db.schemas.referral_rewards import ReferralReward
from earnko.services.notification_service import LoggingNotifier, Notifier
from earnko.utils.mongo_helpers import sanitize_mongo_doc
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)


def compute_referral_bonus(
    commission: float,
    bonus_type: Optional[str] = None,
    value: Optional[float] = None,
    cap: Optional[float] = None,
) -> float:
    """
    percentage: commission * value / 100, fixed: value; then capped when cap > 0.
    Defaults come from REFERRAL_BONUS_TYPE / _VALUE / _CAP.
    """
    bonus_type = (bonus_type or config.REFERRAL_BONUS_TYPE).lower()
    value = config.REFERRAL_BONUS_VALUE if value is None else value
    cap = config.REFERRAL_BONUS_CAP if cap is None else cap

    if bonus_type == "fixed":
        bonus = max(0.0, value)
    else:
        bonus = max(0.0, abs(commission or 0) * value / 100)

    if cap and cap > 0:
        bonus = min(bonus, cap)
    return round_money(bonus)


class ReferralService:
    def __init__(self, database: Database, notifier: Optional[Notifier] = None):
        self.users = database["users"]
        self.rewards = database["referral_rewards"]
        self.notifier = notifier or LoggingNotifier()

    def credit_on_confirmed(self, transaction: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Create one ReferralReward per (transaction, referrer) and credit the referrer.

        Returns the reward (new or existing), or None when nothing applies.
        """
        if transaction.get("status") != TransactionStatus.CONFIRMED.value or not transaction.get("user_id"):
            return None

        referred = self.users.find_one({"user_id": transaction["user_id"]}, {"referred_by": 1})
        referrer_id = (referred or {}).get("referred_by")
        if not referrer_id:
            return None

        bonus = compute_referral_bonus(transaction.get("commission_amount") or 0)
        if bonus <= 0:
            return None

        reward = ReferralReward(
            referrer_id=referrer_id,
            referred_id=transaction["user_id"],
            transaction_id=transaction["transaction_id"],
            amount=bonus,
            notes="Referral bonus credited on confirmed transaction",
        )
        try:
            self.rewards.insert_one(reward.model_dump())
        except DuplicateKeyError:
            # Already credited for this (transaction, referrer)
            return sanitize_mongo_doc(self.rewards.find_one({
                "transaction_id": transaction["transaction_id"],
                "referrer_id": referrer_id,
            }))

        self.users.update_one(
            {"user_id": referrer_id},
            {"$inc": {REFERRAL_EARNINGS: bonus, AVAILABLE_BALANCE: bonus}},
        )
        logger.info(f"🎁 Referral bonus {bonus} credited to {referrer_id} for {transaction['transaction_id']}")
        self.notifier.notify(
            referrer_id,
            "referral_credited",
            f"You earned a referral bonus of ₹{bonus:.2f}",
            {"transaction_id": transaction["transaction_id"], "amount": bonus},
        )
        return reward.model_dump()

    def reverse_on_cancellation(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """Flip a credited reward to reversed exactly once and debit the same buckets."""
        reward = self.rewards.find_one_and_update(
            {"transaction_id": transaction_id, "status": "credited"},
            {"$set": {
                "status": "reversed",
                "reversed_at": now_iso(),
                "notes": "Referral bonus reversed due to transaction cancellation",
            }},
            return_document=ReturnDocument.AFTER,
        )
        if not reward:
            return None

        amount = abs(reward.get("amount") or 0)
        self.users.update_one(
            {"user_id": reward["referrer_id"]},
            {"$inc": {REFERRAL_EARNINGS: -amount, AVAILABLE_BALANCE: -amount}},
        )
        logger.info(f"↩️ Referral bonus {amount} reversed for {reward['referrer_id']} ({transaction_id})")
        self.notifier.notify(
            reward["referrer_id"],
            "referral_reversed",
            f"A referral bonus of ₹{amount:.2f} was reversed",
            {"transaction_id": transaction_id, "amount": amount},
        )
        return sanitize_mongo_doc(reward)
