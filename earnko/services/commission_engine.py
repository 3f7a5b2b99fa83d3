"""
Commission Engine
Resolves the applicable commission rule, computes amounts and creates
exactly one Commission per Transaction.

Money does not move here: wallet buckets follow the transaction status in
the wallet ledger. The engine keeps the Commission record and store stats
in line with the transaction.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from earnko.core.commission_rules import (
    CommissionRule,
    category_rule,
    compute_commission,
    product_override_rule,
    round_money,
    store_default_rule,
)
from earnko.core.errors import NotFoundError, UnsupportedTransitionError
from earnko.core.statuses import CommissionStatus, commission_status_for
from earnko.db.schemas.commissions import CommissionEarned
from earnko.utils.mongo_helpers import sanitize_mongo_doc
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)


class CommissionEngine:
    def __init__(self, database: Database):
        self.transactions = database["transactions"]
        self.commissions = database["commissions"]
        self.rules = database["category_commissions"]
        self.stores = database["stores"]
        self.products = database["products"]
        self.clicks = database["clicks"]
        self.users = database["users"]

    # ------------------------------------------------------------------
    # Rule resolution
    # ------------------------------------------------------------------

    def get_category_rule(self, store_id: Optional[str], category_key: Optional[str]) -> Optional[Dict[str, Any]]:
        """Active store-scoped rule first, then the global (store_id=None) rule."""
        if not category_key:
            return None
        if store_id:
            rule = self.rules.find_one({"store_id": store_id, "category_key": category_key, "is_active": True})
            if rule:
                return rule
        return self.rules.find_one({"store_id": None, "category_key": category_key, "is_active": True})

    def resolve_rule(
        self,
        store_id: Optional[str],
        category_key: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> CommissionRule:
        product = self.products.find_one({"product_id": product_id}) if product_id else None

        override = product_override_rule(product)
        if override:
            return override

        category_key = category_key or (product or {}).get("category_key") or None
        rule = category_rule(self.get_category_rule(store_id, category_key))
        if rule:
            return rule

        store = self.stores.find_one({"store_id": store_id}) if store_id else None
        return store_default_rule(store)

    def quote(
        self,
        order_amount: float,
        store_id: Optional[str],
        category_key: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Tuple[float, CommissionRule]:
        rule = self.resolve_rule(store_id, category_key, product_id)
        return compute_commission(order_amount, rule), rule

    # ------------------------------------------------------------------
    # Commission records
    # ------------------------------------------------------------------

    def _affiliate_for(self, tx: Dict[str, Any]) -> Optional[str]:
        """Explicit affiliate on the transaction, else the click's owner."""
        explicit = (tx.get("affiliate_data") or {}).get("affiliate_id") or tx.get("user_id")
        if explicit:
            return explicit
        if tx.get("click_id"):
            click = self.clicks.find_one({"click_id": tx["click_id"]}, {"user_id": 1})
            return (click or {}).get("user_id")
        return None

    def process_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        Create the Commission for a transaction, idempotently.

        Returns the existing Commission unchanged if one is already recorded,
        None when the transaction resolves to no affiliate.

        Raises:
            NotFoundError: unknown transaction id
        """
        tx = self.transactions.find_one({"transaction_id": transaction_id})
        if not tx:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        existing = self.commissions.find_one({"transaction_id": transaction_id})
        if existing:
            return sanitize_mongo_doc(existing)

        tracking = tx.get("tracking_data") or {}
        if tx.get("commission_source") == "rules":
            rule = self.resolve_rule(tx.get("store_id"), tracking.get("category_key"), tx.get("product_id"))
            amount = compute_commission(tx.get("product_amount") or 0, rule)
        else:
            # Network-reported amounts are what the wallet was credited with
            amount = round_money(abs(tx.get("commission_amount") or 0))
            rule = CommissionRule(rate=amount, type="fixed", source="network")

        # Written back before the Commission exists
        self.transactions.update_one(
            {"transaction_id": transaction_id},
            {"$set": {
                "commission_amount": amount,
                "commission_rate": rule.rate,
                "commission_type": rule.type,
                "updated_at": now_iso(),
            }},
        )

        affiliate_id = self._affiliate_for(tx)
        if not affiliate_id:
            logger.info(f"No affiliate for transaction {transaction_id}, no commission recorded")
            return None

        commission = CommissionEarned(
            affiliate_id=affiliate_id,
            store_id=tx.get("store_id"),
            transaction_id=transaction_id,
            amount=amount,
            rate=rule.rate,
            type=rule.type,
            status=commission_status_for(tx.get("status")).value,
            metadata={"applied_rule": rule.describe(), "order_id": tx.get("order_id")},
        )
        try:
            self.commissions.insert_one(commission.model_dump())
        except DuplicateKeyError:
            # Concurrent processing created it between our check and insert
            return sanitize_mongo_doc(self.commissions.find_one({"transaction_id": transaction_id}))

        if tx.get("store_id") and commission.status != CommissionStatus.CANCELLED.value:
            self.stores.update_one(
                {"store_id": tx["store_id"]},
                {"$inc": {"stats.total_conversions": 1, "stats.total_commission": amount}},
            )
        slug = tracking.get("custom_slug")
        if slug:
            self.users.update_one(
                {"user_id": affiliate_id, "affiliate_info.unique_links.custom_slug": slug},
                {"$inc": {"affiliate_info.unique_links.$.conversions": 1}},
            )

        logger.info(f"✅ Commission {commission.commission_id} {amount} for {affiliate_id} ({rule.source})")
        return commission.model_dump()

    def sync_with_transaction(self, transaction: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Mirror the transaction's status and amount onto its Commission.

        Paid commissions and commissions reversed by an admin are final.
        """
        status = commission_status_for(transaction.get("status"))
        now = now_iso()
        update: Dict[str, Any] = {
            "status": status.value,
            "amount": round_money(abs(transaction.get("commission_amount") or 0)),
            "updated_at": now,
        }
        current = self.commissions.find_one({"transaction_id": transaction["transaction_id"]})
        if not current or current.get("status") == CommissionStatus.PAID.value:
            return sanitize_mongo_doc(current)
        if current.get("status") == CommissionStatus.CANCELLED.value and current.get("reason"):
            logger.info(f"Commission {current['commission_id']} reversed by admin, not following transaction")
            return sanitize_mongo_doc(current)
        if current.get("status") != status.value:
            if status == CommissionStatus.CONFIRMED:
                update["approved_at"] = now
            elif status == CommissionStatus.CANCELLED:
                update["reversed_at"] = now

        doc = self.commissions.find_one_and_update(
            {
                "commission_id": current["commission_id"],
                "status": {"$ne": CommissionStatus.PAID.value},
                "$nor": [{"status": CommissionStatus.CANCELLED.value, "reason": {"$ne": None}}],
            },
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if doc and doc.get("status") != current.get("status"):
            logger.info(f"Commission {doc['commission_id']} {current.get('status')} -> {status.value}")
        return sanitize_mongo_doc(doc)

    # ------------------------------------------------------------------
    # Admin actions (commission record only; money follows the transaction)
    # ------------------------------------------------------------------

    def approve(self, commission_id: str) -> Dict[str, Any]:
        doc = self.commissions.find_one_and_update(
            {
                "commission_id": commission_id,
                "status": {"$in": [CommissionStatus.PENDING.value, CommissionStatus.UNDER_REVIEW.value]},
            },
            {"$set": {"status": CommissionStatus.CONFIRMED.value, "approved_at": now_iso(), "updated_at": now_iso()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            return sanitize_mongo_doc(doc)
        self._raise_for_state(commission_id, "approve")

    def reverse(self, commission_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        doc = self.commissions.find_one_and_update(
            {"commission_id": commission_id, "status": {"$ne": CommissionStatus.CANCELLED.value}},
            {"$set": {
                "status": CommissionStatus.CANCELLED.value,
                "reason": reason or "Reversed by admin",
                "reversed_at": now_iso(),
                "updated_at": now_iso(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            return sanitize_mongo_doc(doc)
        self._raise_for_state(commission_id, "reverse")

    def _raise_for_state(self, commission_id: str, action: str) -> None:
        current = self.commissions.find_one({"commission_id": commission_id}, {"status": 1})
        if not current:
            raise NotFoundError(f"Commission {commission_id} not found")
        raise UnsupportedTransitionError(
            f"Cannot {action} a {current['status']} commission",
            data={"commission_id": commission_id, "status": current["status"]},
        )
