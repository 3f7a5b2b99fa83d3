"""
Webhook Ingester
One state machine for every postback network:

    receive   -> WebhookEvent(status=received), before anything can fail
    normalize -> NetworkProfile aliases, canonical status
    validate  -> click id and order id required
    resolve   -> Click by click id (unknown click ids are never credited)
    upsert    -> Transaction keyed "<network>:<orderId>", wallet delta only
    finish    -> WebhookEvent processed / error

Concurrency: the unique index on order_id turns a racing insert into an
update retry, and updates are conditional on the transaction's version so
only the writer that wins applies its wallet delta.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from earnko.config import WEBHOOK_UPSERT_RETRIES
from earnko.core.errors import (
    AffiliateError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnknownClickIdError,
)
from earnko.core.network_profiles import NetworkProfile, NormalizedPostback, get_profile, normalize_postback
from earnko.core.statuses import TransactionStatus
from earnko.core.wallet_transitions import WalletPlan, plan_new, plan_transition
from earnko.db.schemas.transactions import Transaction
from earnko.db.schemas.webhook_events import WebhookEvent
from earnko.services.click_ledger import ClickLedger
from earnko.services.notification_service import LoggingNotifier, Notifier
from earnko.services.settlement_service import SettlementService
from earnko.utils.mongo_helpers import sanitize_mongo_doc
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)


def mongo_safe(doc: Any) -> Any:
    """Raw postback keys may contain '.' or a leading '$'; store them as plain text keys."""
    if isinstance(doc, Mapping):
        return {str(k).replace(".", "_").lstrip("$"): mongo_safe(v) for k, v in doc.items()}
    if isinstance(doc, (list, tuple)):
        return [mongo_safe(v) for v in doc]
    return doc


class WebhookIngester:
    def __init__(
        self,
        database: Database,
        notifier: Optional[Notifier] = None,
        max_attempts: int = WEBHOOK_UPSERT_RETRIES,
    ):
        self.events = database["webhook_events"]
        self.transactions = database["transactions"]
        self.notifier = notifier or LoggingNotifier()
        self.clicks = ClickLedger(database)
        self.settlement = SettlementService(database, self.notifier)
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def ingest(self, network: str, payload: Mapping[str, Any], headers: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Process one postback and return {orderId, status, transactionId}.

        Raises AffiliateError subclasses for client-visible failures
        (bad_request, unknown_click_id, unsupported_transition, conflict);
        anything else propagates after the event is marked error.
        """
        profile = get_profile(network)
        if profile is None:
            raise NotFoundError(f"Unknown webhook network '{network}'")

        event = WebhookEvent(source=profile.name, payload=mongo_safe(dict(payload)), headers=mongo_safe(dict(headers or {})))
        self.events.insert_one(event.model_dump())

        try:
            result = self._process(profile, payload)
        except UnknownClickIdError as e:
            # Organic traffic hits this routinely
            logger.warning(f"[{profile.name}] {e.message}")
            self._finish(event.event_id, "error", error=e.message, error_code=e.code)
            raise
        except AffiliateError as e:
            logger.warning(f"[{profile.name}] postback rejected: {e.code} {e.message}")
            self._finish(event.event_id, "error", error=e.message, error_code=e.code)
            raise
        except Exception as e:
            logger.exception(f"[{profile.name}] postback failed")
            self._finish(event.event_id, "error", error=str(e) or e.__class__.__name__, error_code="server_error")
            raise

        self._finish(event.event_id, "processed", transaction_id=result["transactionId"])
        return result

    def _finish(self, event_id: str, status: str, **fields: Any) -> None:
        update = {"status": status, "processed_at": now_iso()}
        update.update({k: v for k, v in fields.items() if v is not None})
        self.events.update_one({"event_id": event_id}, {"$set": update})

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _process(self, profile: NetworkProfile, payload: Mapping[str, Any]) -> Dict[str, Any]:
        postback = normalize_postback(profile, payload)
        if not postback.click_id or not postback.order_id:
            raise BadRequestError(
                "Missing click id or order id",
                data={"click_id": postback.click_id, "order_id": postback.order_id},
            )

        click = self.clicks.resolve_by_click_id(postback.click_id)
        if not click:
            raise UnknownClickIdError(f"Unknown click id {postback.click_id}", data={"click_id": postback.click_id})

        tx, plan, created = self._upsert(profile, postback, click)

        if plan.ignored_revision and tx["status"] == TransactionStatus.CONFIRMED.value:
            logger.warning(f"[{profile.name}] {tx['order_id']} amount revision on confirmed order ignored")

        self.settlement.after_settlement(tx, plan, created)

        logger.info(
            f"📥 [{profile.name}] {tx['order_id']} {tx['status']} commission={tx['commission_amount']} "
            f"{'created' if created else 'updated'}"
        )
        return {"orderId": tx["order_id"], "status": tx["status"], "transactionId": tx["transaction_id"]}

    def _upsert(
        self,
        profile: NetworkProfile,
        postback: NormalizedPostback,
        click: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], WalletPlan, bool]:
        order_key = f"{profile.name}:{postback.order_id}"

        for attempt in range(self.max_attempts):
            existing = self.transactions.find_one({"order_id": order_key})

            if existing is None:
                doc = self._new_transaction(order_key, postback, click)
                plan = plan_new(doc["status"], doc["commission_amount"])
                doc["commission_amount"] = plan.settled_amount
                try:
                    self.transactions.insert_one(dict(doc))
                except DuplicateKeyError:
                    logger.debug(f"{order_key} created concurrently, retrying as update")
                    continue
                self.settlement.wallet.apply_plan(doc.get("user_id"), plan, f"{order_key} new {doc['status']}")
                return doc, plan, True

            updated, plan = self._update_transaction(existing, postback)
            if updated is None:
                logger.debug(f"{order_key} version moved (attempt {attempt + 1}), reloading")
                continue
            self.settlement.wallet.apply_plan(
                updated.get("user_id"), plan, f"{order_key} {existing.get('status')}->{updated['status']}"
            )
            return updated, plan, False

        raise ConflictError(f"Too many concurrent updates for {order_key}", data={"order_id": order_key})

    def _new_transaction(self, order_key: str, postback: NormalizedPostback, click: Dict[str, Any]) -> Dict[str, Any]:
        metadata = click.get("metadata") or {}
        category_key = metadata.get("category_key")

        tracking = {
            "source": postback.network,
            "currency": postback.currency,
            "raw_status": postback.raw_status,
            "custom_slug": click.get("custom_slug"),
            "category_key": category_key,
            **postback.context,
        }

        if postback.commission is not None:
            amount, source, rule = postback.commission, "network", None
        else:
            amount, rule = self.settlement.engine.quote(
                postback.sale_amount, click.get("store_id"), category_key, click.get("product_id")
            )
            source = "rules"
            tracking["applied_rule"] = rule.describe()

        tx = Transaction(
            order_id=order_key,
            network=postback.network,
            user_id=click.get("user_id"),
            store_id=click.get("store_id"),
            product_id=click.get("product_id"),
            click_id=postback.click_id,
            product_amount=postback.sale_amount,
            commission_amount=abs(amount),
            commission_rate=rule.rate if rule else None,
            commission_type=rule.type if rule else None,
            commission_source=source,
            currency=postback.currency,
            status=postback.status.value,
            tracking_data={k: v for k, v in tracking.items() if v is not None},
            affiliate_data={
                "provider": postback.network,
                "click_id": postback.click_id,
                "order_id": postback.order_id,
                "affiliate_id": click.get("user_id"),
            },
            notes=f"Created via {postback.network} postback",
        )
        return tx.model_dump()

    def _update_transaction(
        self,
        existing: Dict[str, Any],
        postback: NormalizedPostback,
    ) -> Tuple[Optional[Dict[str, Any]], WalletPlan]:
        prev_status = existing.get("status") or TransactionStatus.PENDING.value
        prev_amount = existing.get("commission_amount") or 0

        new_sale = postback.sale_amount or existing.get("product_amount") or 0

        tracking = dict(existing.get("tracking_data") or {})
        tracking.update({k: v for k, v in postback.context.items() if v is not None})
        tracking["raw_status"] = postback.raw_status

        if postback.commission is None and existing.get("commission_source") == "rules":
            # Rule-priced orders follow the latest sale amount
            new_amount, rule = self.settlement.engine.quote(
                new_sale, existing.get("store_id"), tracking.get("category_key"), existing.get("product_id")
            )
            tracking["applied_rule"] = rule.describe()
        else:
            # A missing or zero amount keeps what we already have
            new_amount = postback.commission if postback.commission else prev_amount

        plan = plan_transition(prev_status, postback.status.value, prev_amount, new_amount)

        updated = self.transactions.find_one_and_update(
            {"order_id": existing["order_id"], "version": existing.get("version", 0)},
            {
                "$set": {
                    "status": postback.status.value,
                    "commission_amount": plan.settled_amount,
                    "product_amount": new_sale,
                    "tracking_data": tracking,
                    "updated_at": now_iso(),
                },
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        return sanitize_mongo_doc(updated), plan
