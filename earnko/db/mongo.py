from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from earnko.config import DATABASE_NAME, MONGO_URI

# MongoClient connects lazily, importing this module never blocks on the server
client = MongoClient(MONGO_URI)
db = client[DATABASE_NAME]


def get_db() -> Database:
    """FastAPI dependency; tests override it with a mongomock database."""
    return db


def ensure_indexes(database: Optional[Database] = None) -> None:
    """Create core indexes for collections used by the backend."""
    database = db if database is None else database

    # Users & embedded share links
    database["users"].create_index("user_id", unique=True)
    database["users"].create_index([("affiliate_info.unique_links.custom_slug", 1)])
    database["users"].create_index([("referred_by", 1)])

    # Catalog
    database["stores"].create_index("store_id", unique=True)
    database["products"].create_index("product_id", unique=True)
    database["products"].create_index([("store_id", 1)])

    # Click ledger: click_id is the attribution join key
    database["clicks"].create_index("click_id", unique=True)
    database["clicks"].create_index([("user_id", 1), ("created_at", -1)])
    database["clicks"].create_index([("custom_slug", 1)])

    # Transactions: namespaced order id is the concurrency guard for postbacks
    database["transactions"].create_index("order_id", unique=True)
    database["transactions"].create_index("transaction_id", unique=True)
    database["transactions"].create_index([("user_id", 1), ("created_at", -1)])
    database["transactions"].create_index([("click_id", 1)])

    # Commissions: at most one per transaction
    database["commissions"].create_index("commission_id", unique=True)
    database["commissions"].create_index("transaction_id", unique=True)
    database["commissions"].create_index([("affiliate_id", 1), ("status", 1)])

    # Commission rules: one rule per (store or global, category)
    database["category_commissions"].create_index([("store_id", 1), ("category_key", 1)], unique=True)

    # Referral rewards: one per (transaction, referrer)
    database["referral_rewards"].create_index([("transaction_id", 1), ("referrer_id", 1)], unique=True)
    database["referral_rewards"].create_index([("referrer_id", 1)])

    # Postback audit log
    database["webhook_events"].create_index([("source", 1)])
    database["webhook_events"].create_index([("status", 1)])
    database["webhook_events"].create_index([("created_at", -1)])

    # Short codes
    database["short_urls"].create_index("code", unique=True)
    database["short_urls"].create_index([("slug", 1)])

    database["notifications"].create_index([("user_id", 1), ("created_at", -1)])
