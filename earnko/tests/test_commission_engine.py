"""
Commission engine: rule precedence, one Commission per Transaction,
admin approve/reverse
"""
import pytest

from conftest import create_product, create_store, create_user
from earnko.core.errors import NotFoundError, UnsupportedTransitionError
from earnko.db.schemas.category_commissions import CategoryCommission
from earnko.db.schemas.transactions import Transaction
from earnko.services.commission_engine import CommissionEngine


@pytest.fixture
def engine(database):
    create_store(database, "store_1", commission_rate=5, max_commission=0)
    return CommissionEngine(database)


def add_rule(database, category_key, rate, store_id=None, **fields):
    rule = CategoryCommission(store_id=store_id, category_key=category_key, commission_rate=rate, **fields)
    database["category_commissions"].insert_one(rule.model_dump())


def add_transaction(database, **fields):
    fields.setdefault("order_id", "cuelinks:A1")
    fields.setdefault("network", "cuelinks")
    tx = Transaction(**fields).model_dump()
    database["transactions"].insert_one(dict(tx))
    return tx


class TestRulePrecedence:
    def test_store_default(self, engine):
        amount, rule = engine.quote(1000, "store_1")
        assert (amount, rule.source) == (50.0, "store_default")

    def test_global_category_beats_store_default(self, engine, database):
        add_rule(database, "tv", 2)
        amount, rule = engine.quote(1000, "store_1", "tv")
        assert (amount, rule.source) == (20.0, "category_global")

    def test_store_category_beats_global(self, engine, database):
        add_rule(database, "tv", 2)
        add_rule(database, "tv", 3, store_id="store_1", max_cap=25)
        amount, rule = engine.quote(1000, "store_1", "tv")
        assert (amount, rule.source) == (25.0, "category_store")

    def test_inactive_rule_ignored(self, engine, database):
        add_rule(database, "tv", 9, store_id="store_1", is_active=False)
        assert engine.quote(1000, "store_1", "tv")[1].source == "store_default"

    def test_product_override_wins(self, engine, database):
        add_rule(database, "tv", 3, store_id="store_1")
        create_product(database, "prod_1", "store_1", "https://shop.example.com/tv", category_key="tv",
                       commission_override={"rate": 40, "type": "fixed"})
        amount, rule = engine.quote(1000, "store_1", None, "prod_1")
        assert (amount, rule.source) == (40.0, "product_override")

    def test_product_category_used_when_click_has_none(self, engine, database):
        add_rule(database, "tv", 1)
        create_product(database, "prod_2", "store_1", "https://shop.example.com/tv2", category_key="tv")
        assert engine.quote(1000, "store_1", None, "prod_2") == (10.0, engine.resolve_rule("store_1", "tv"))

    def test_unknown_store_earns_nothing(self, engine):
        assert engine.quote(1000, "store_missing")[0] == 0.0


class TestProcessTransaction:
    def test_network_amount_creates_single_commission(self, engine, database):
        create_user(database, "u1")
        tx = add_transaction(database, user_id="u1", store_id="store_1", commission_amount=-42.5,
                             affiliate_data={"affiliate_id": "u1"})

        first = engine.process_transaction(tx["transaction_id"])
        second = engine.process_transaction(tx["transaction_id"])

        assert first["amount"] == 42.5
        assert first["type"] == "fixed"
        assert first["status"] == "pending"
        assert second["commission_id"] == first["commission_id"]
        assert database["commissions"].count_documents({"transaction_id": tx["transaction_id"]}) == 1
        stats = database["stores"].find_one({"store_id": "store_1"})["stats"]
        assert stats["total_conversions"] == 1
        assert stats["total_commission"] == 42.5

    def test_cancelled_on_arrival_not_counted_in_store_stats(self, engine, database):
        tx = add_transaction(database, user_id="u1", store_id="store_1", commission_amount=20, status="cancelled")

        commission = engine.process_transaction(tx["transaction_id"])

        assert commission["status"] == "cancelled"
        stats = database["stores"].find_one({"store_id": "store_1"})["stats"]
        assert stats["total_conversions"] == 0
        assert stats["total_commission"] == 0

    def test_rules_source_recomputes_and_writes_back(self, engine, database):
        add_rule(database, "tv", 2)
        tx = add_transaction(database, user_id="u1", store_id="store_1", product_amount=2500,
                             commission_source="rules", tracking_data={"category_key": "tv"})

        commission = engine.process_transaction(tx["transaction_id"])

        assert commission["amount"] == 50.0
        stored = database["transactions"].find_one({"transaction_id": tx["transaction_id"]})
        assert (stored["commission_amount"], stored["commission_rate"], stored["commission_type"]) == (50.0, 2.0, "percentage")

    def test_affiliate_falls_back_to_click_owner(self, engine, database):
        database["clicks"].insert_one({"click_id": "clk_x", "user_id": "u9"})
        tx = add_transaction(database, click_id="clk_x", commission_amount=5)
        assert engine.process_transaction(tx["transaction_id"])["affiliate_id"] == "u9"

    def test_no_affiliate_no_commission(self, engine, database):
        tx = add_transaction(database, commission_amount=5)
        assert engine.process_transaction(tx["transaction_id"]) is None
        assert database["commissions"].count_documents({}) == 0

    def test_link_conversion_counter(self, engine, database):
        create_user(database, "u1", affiliate_info={"unique_links": [{"custom_slug": "abc12345"}]})
        tx = add_transaction(database, user_id="u1", commission_amount=5, tracking_data={"custom_slug": "abc12345"})
        engine.process_transaction(tx["transaction_id"])
        link = database["users"].find_one({"user_id": "u1"})["affiliate_info"]["unique_links"][0]
        assert link["conversions"] == 1

    def test_unknown_transaction(self, engine):
        with pytest.raises(NotFoundError):
            engine.process_transaction("txn_missing")


class TestCommissionStatus:
    @pytest.fixture
    def commission(self, engine, database):
        tx = add_transaction(database, user_id="u1", commission_amount=30)
        return engine.process_transaction(tx["transaction_id"]), tx

    def test_sync_follows_transaction(self, engine, commission):
        record, tx = commission
        synced = engine.sync_with_transaction({**tx, "status": "confirmed", "commission_amount": 33})
        assert synced["status"] == "confirmed"
        assert synced["amount"] == 33.0
        assert synced["approved_at"]

    def test_paid_commission_is_final(self, engine, database, commission):
        record, tx = commission
        database["commissions"].update_one({"commission_id": record["commission_id"]}, {"$set": {"status": "paid"}})
        assert engine.sync_with_transaction({**tx, "status": "cancelled"})["status"] == "paid"

    def test_approve_then_reverse(self, engine, commission):
        record, _ = commission
        assert engine.approve(record["commission_id"])["status"] == "confirmed"
        with pytest.raises(UnsupportedTransitionError):
            engine.approve(record["commission_id"])
        reversed_ = engine.reverse(record["commission_id"], "chargeback")
        assert (reversed_["status"], reversed_["reason"]) == ("cancelled", "chargeback")
        with pytest.raises(UnsupportedTransitionError):
            engine.reverse(record["commission_id"])

    def test_admin_reversal_survives_later_postbacks(self, engine, database, commission):
        record, tx = commission
        engine.reverse(record["commission_id"], "fraudulent order")

        synced = engine.sync_with_transaction({**tx, "status": "pending", "commission_amount": 40})

        assert (synced["status"], synced["amount"]) == ("cancelled", 30.0)
        assert database["commissions"].find_one({})["reason"] == "fraudulent order"

    def test_unknown_commission(self, engine):
        with pytest.raises(NotFoundError):
            engine.approve("comm_missing")


def test_store_category_rule_caps_electronics_order(database):
    create_store(database, "store_s", commission_rate=3)
    add_rule(database, "Electronics", 5, store_id="store_s", max_cap=200)
    create_product(database, "prod_tv", "store_s", "https://shop.example.com/tv", category_key="Electronics")

    amount, rule = CommissionEngine(database).quote(10000, "store_s", None, "prod_tv")

    assert amount == 200.0
    assert rule.source == "category_store"
