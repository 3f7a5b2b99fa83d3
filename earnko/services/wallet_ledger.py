"""
Wallet Ledger
Applies planned wallet deltas with a single atomic $inc per change.
Wallets are never read-modify-written.
"""
import logging
from typing import Dict, Optional

from pymongo.database import Database

from earnko.core.wallet_transitions import WalletPlan, plan_new, plan_transition

logger = logging.getLogger(__name__)


class WalletLedger:
    def __init__(self, database: Database):
        self.users = database["users"]

    def apply_deltas(self, user_id: Optional[str], deltas: Dict[str, float], reason: str = "") -> bool:
        if not user_id or not deltas:
            return False
        res = self.users.update_one({"user_id": user_id}, {"$inc": deltas})
        if not res.matched_count:
            logger.warning(f"Wallet update skipped, user {user_id} not found ({reason})")
            return False
        logger.info(f"💰 Wallet {user_id} {reason}: {deltas}")
        return True

    def apply_plan(self, user_id: Optional[str], plan: WalletPlan, reason: str = "") -> bool:
        return self.apply_deltas(user_id, plan.deltas, reason)

    def apply_new(self, user_id: Optional[str], status: str, amount: float) -> WalletPlan:
        plan = plan_new(status, amount)
        self.apply_plan(user_id, plan, f"new {status}")
        return plan

    def apply_transition(
        self,
        user_id: Optional[str],
        prev_status: str,
        new_status: str,
        prev_amount: float,
        new_amount: float,
    ) -> WalletPlan:
        plan = plan_transition(prev_status, new_status, prev_amount, new_amount)
        self.apply_plan(user_id, plan, f"{prev_status}->{new_status}")
        return plan

    def get_wallet(self, user_id: str) -> Optional[Dict[str, float]]:
        user = self.users.find_one({"user_id": user_id}, {"wallet": 1, "affiliate_info": 1})
        if not user:
            return None
        info = user.get("affiliate_info") or {}
        return {
            **(user.get("wallet") or {}),
            "pending_commissions": info.get("pending_commissions", 0.0),
            "total_commissions": info.get("total_commissions", 0.0),
            "paid_commissions": info.get("paid_commissions", 0.0),
        }
