"""
Shared fixtures: an in-memory Mongo (mongomock) with production indexes,
scriptable network adapters and a notifier that records what it was told.
"""
from typing import Any, Dict, List, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from earnko import config
from earnko.core.provider_router import ProviderConfig
from earnko.db.mongo import ensure_indexes, get_db
from earnko.db.schemas.stores import Product, Store
from earnko.db.schemas.users import User
from earnko.integrations.network_adapters import NetworkAdapter
from earnko.services.notification_service import Notifier


class RecordingNotifier(Notifier):
    def __init__(self):
        self.notices: List[Dict[str, Any]] = []
        self.alerts: List[Dict[str, Any]] = []

    def notify(self, user_id, kind, message, data=None):
        self.notices.append({"user_id": user_id, "kind": kind, "message": message, "data": data or {}})

    def alert(self, severity, title, message, details=None):
        self.alerts.append({"severity": severity, "title": title, "message": message, "details": details or {}})

    def kinds(self, user_id: Optional[str] = None) -> List[str]:
        return [n["kind"] for n in self.notices if user_id is None or n["user_id"] == user_id]


class FakeAdapter(NetworkAdapter):
    """Returns a predictable deeplink, or raises whatever `error` is set to."""

    def __init__(self, name: str):
        super().__init__()
        self.name = name
        self.calls: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def build_deeplink(self, destination_url: str, click_id: str, config: ProviderConfig) -> str:
        self.calls.append({"url": destination_url, "click_id": click_id, "config": config})
        if self.error is not None:
            raise self.error
        return f"https://go.{self.name}.test/out?sub={click_id}"


@pytest.fixture(autouse=True)
def stable_config(monkeypatch):
    """Routing tables and bonus settings independent of the local .env"""
    monkeypatch.setattr(config, "TRACKIER_CAMPAIGNS", {"myntra.com": "777", "ajio.com": "888"})
    monkeypatch.setattr(config, "EXTRAPE_AFFID", "aff123")
    monkeypatch.setattr(config, "EXTRAPE_AFF_EXT_PARAM1", "")
    monkeypatch.setattr(config, "REFERRAL_BONUS_TYPE", "percentage")
    monkeypatch.setattr(config, "REFERRAL_BONUS_VALUE", 10)
    monkeypatch.setattr(config, "REFERRAL_BONUS_CAP", 0)


@pytest.fixture
def database():
    client = mongomock.MongoClient()
    database = client["earnko_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def adapters():
    return {name: FakeAdapter(name) for name in ("cuelinks", "trackier", "extrape")}


@pytest.fixture
def no_redirects():
    return lambda url: url


def create_user(database, user_id: str, **fields) -> Dict[str, Any]:
    user = User(user_id=user_id, name=user_id, **fields).model_dump()
    database["users"].insert_one(dict(user))
    return user


def create_store(database, store_id: str, **fields) -> Dict[str, Any]:
    fields.setdefault("name", store_id)
    store = Store(store_id=store_id, **fields).model_dump()
    database["stores"].insert_one(dict(store))
    return store


def create_product(database, product_id: str, store_id: str, deeplink: str, **fields) -> Dict[str, Any]:
    fields.setdefault("title", product_id)
    product = Product(product_id=product_id, store_id=store_id, deeplink=deeplink, **fields).model_dump()
    database["products"].insert_one(dict(product))
    return product


def wallet_of(database, user_id: str) -> Dict[str, float]:
    user = database["users"].find_one({"user_id": user_id})
    return {**user["wallet"], **{
        "pending_commissions": user["affiliate_info"]["pending_commissions"],
        "total_commissions": user["affiliate_info"]["total_commissions"],
    }}


def auth(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer user:{user_id}"}


@pytest.fixture
def client(database, notifier, adapters, no_redirects):
    from earnko.main import app
    from earnko.routes.dependencies import get_adapters, get_notifier, get_redirect_resolver

    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_adapters] = lambda: adapters
    app.dependency_overrides[get_redirect_resolver] = lambda: no_redirects
    # Not used as a context manager: startup would build indexes on the real server
    test_client = TestClient(app, follow_redirects=False)
    yield test_client
    app.dependency_overrides.clear()
