"""
Settlement Service
What happens after a transaction's money state changes, shared by postbacks
and admin status actions: Commission record, referral cascade, user notices.
"""
import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from earnko.config import WEBHOOK_UPSERT_RETRIES
from earnko.core.errors import BadRequestError, ConflictError, NotFoundError
from earnko.core.statuses import TransactionStatus, map_admin_status
from earnko.core.wallet_transitions import WalletPlan, plan_transition
from earnko.services.commission_engine import CommissionEngine
from earnko.services.notification_service import LoggingNotifier, Notifier
from earnko.services.referral_service import ReferralService
from earnko.services.wallet_ledger import WalletLedger
from earnko.utils.mongo_helpers import sanitize_mongo_doc
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(self, database: Database, notifier: Optional[Notifier] = None):
        self.transactions = database["transactions"]
        self.notifier = notifier or LoggingNotifier()
        self.engine = CommissionEngine(database)
        self.wallet = WalletLedger(database)
        self.referrals = ReferralService(database, self.notifier)

    def after_settlement(self, tx: Dict[str, Any], plan: WalletPlan, created: bool = False) -> None:
        """Commission record, referral cascade and user notices for an attributed transaction."""
        user_id = tx.get("user_id")
        if not user_id:
            # Anonymous product click: recorded, nobody is credited
            return

        self.engine.process_transaction(tx["transaction_id"])
        tx = sanitize_mongo_doc(self.transactions.find_one({"transaction_id": tx["transaction_id"]})) or tx
        self.engine.sync_with_transaction(tx)

        if plan.became_confirmed:
            self.referrals.credit_on_confirmed(tx)
        if plan.reversed:
            self.referrals.reverse_on_cancellation(tx["transaction_id"])

        if plan.is_noop:
            return
        amount = tx.get("commission_amount") or 0
        data = {"transaction_id": tx["transaction_id"], "order_id": tx["order_id"]}
        if created:
            self.notifier.notify(user_id, "conversion", f"New {tx['status']} conversion worth ₹{amount:.2f}", data)
        elif plan.became_confirmed:
            self.notifier.notify(user_id, "conversion_confirmed", f"₹{amount:.2f} is now available in your wallet", data)
        elif tx["status"] == TransactionStatus.CANCELLED.value:
            self.notifier.notify(user_id, "conversion_cancelled", f"A conversion worth ₹{amount:.2f} was cancelled", data)

    def change_status(self, transaction_id: str, raw_status: str, note: Optional[str] = None) -> Dict[str, Any]:
        """
        Admin status change, through the same wallet transitions as postbacks.

        Accepts canonical statuses and the approved/rejected/reversed synonyms.

        Raises:
            BadRequestError: unknown status word
            NotFoundError: unknown transaction
            UnsupportedTransitionError: e.g. cancelled -> confirmed
        """
        status = map_admin_status(raw_status)
        if status is None:
            raise BadRequestError(f"Unknown status '{raw_status}'", data={"status": raw_status})

        for _ in range(WEBHOOK_UPSERT_RETRIES):
            tx = self.transactions.find_one({"transaction_id": transaction_id})
            if not tx:
                raise NotFoundError(f"Transaction {transaction_id} not found")

            prev_status = tx.get("status") or TransactionStatus.PENDING.value
            amount = tx.get("commission_amount") or 0
            plan = plan_transition(prev_status, status.value, amount, amount)

            update: Dict[str, Any] = {"status": status.value, "updated_at": now_iso()}
            if note:
                update["notes"] = note
            updated = self.transactions.find_one_and_update(
                {"transaction_id": transaction_id, "version": tx.get("version", 0)},
                {"$set": update, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                continue

            updated = sanitize_mongo_doc(updated)
            self.wallet.apply_plan(updated.get("user_id"), plan, f"admin {prev_status}->{status.value}")
            self.after_settlement(updated, plan)
            logger.info(f"🛠️ Transaction {transaction_id} {prev_status} -> {status.value} by admin")
            return updated

        raise ConflictError(f"Too many concurrent updates for {transaction_id}")
