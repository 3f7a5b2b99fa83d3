"""
Click Ledger
Records attribution events keyed by an opaque click id and resolves
postback click ids back to a user/store/product.
"""
import logging
from typing import Any, Dict, Optional

from pymongo.database import Database

from earnko.core.errors import UnknownClickIdError
from earnko.db.schemas.clicks import Click
from earnko.utils.mongo_helpers import sanitize_mongo_doc
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)


class ClickLedger:
    def __init__(self, database: Database):
        self.clicks = database["clicks"]

    def record_click(
        self,
        user_id: Optional[str] = None,
        store_id: Optional[str] = None,
        product_id: Optional[str] = None,
        custom_slug: Optional[str] = None,
        affiliate_link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert a new Click with a fresh click id and return it."""
        click = Click(
            user_id=user_id,
            store_id=store_id,
            product_id=product_id,
            custom_slug=custom_slug,
            affiliate_link=affiliate_link,
            metadata=metadata or {},
            ip_address=ip_address,
            user_agent=user_agent,
            referrer=referrer,
        )
        doc = click.model_dump()
        self.clicks.insert_one(dict(doc))
        logger.debug(f"Recorded click {click.click_id} user={user_id} slug={custom_slug}")
        return doc

    def attach_generated_link(self, click_id: str, url: str) -> bool:
        """
        Set affiliate_link once. Returns True if this call attached it.

        Repeating the call with the same url is a no-op; a different url on an
        already-attached click is left alone and logged.
        """
        res = self.clicks.update_one(
            {"click_id": click_id, "affiliate_link": None},
            {"$set": {"affiliate_link": url, "updated_at": now_iso()}},
        )
        if res.modified_count:
            return True

        existing = self.clicks.find_one({"click_id": click_id}, {"affiliate_link": 1})
        if not existing:
            raise UnknownClickIdError(f"Unknown click id {click_id}", data={"click_id": click_id})
        if existing.get("affiliate_link") != url:
            logger.warning(f"Click {click_id} already has a generated link, ignoring new one")
        return False

    def mark_link_failed(self, click_id: str, error_code: str) -> None:
        """Flag a click whose deeplink could not be built; it keeps no affiliate_link."""
        self.clicks.update_one(
            {"click_id": click_id},
            {"$set": {"metadata.link_error": error_code, "updated_at": now_iso()}},
        )

    def get(self, click_id: str) -> Optional[Dict[str, Any]]:
        if not click_id:
            return None
        return sanitize_mongo_doc(self.clicks.find_one({"click_id": click_id}))

    def resolve_by_click_id(self, click_id: str) -> Optional[Dict[str, Any]]:
        """{user_id, store_id, product_id, metadata} for a click id, or None"""
        click = self.get(click_id)
        if not click:
            return None
        return {
            "click_id": click["click_id"],
            "user_id": click.get("user_id"),
            "store_id": click.get("store_id"),
            "product_id": click.get("product_id"),
            "custom_slug": click.get("custom_slug"),
            "metadata": click.get("metadata") or {},
        }
