"""
Route Dependencies
Services are assembled per request from the database and the process-wide
collaborators owned by main.py (notifier, network adapters, redirect resolver).
"""
from typing import Callable, Dict

from fastapi import Depends, Request
from pymongo.database import Database

from earnko.db.mongo import get_db
from earnko.integrations.network_adapters import NetworkAdapter
from earnko.services.commission_engine import CommissionEngine
from earnko.services.link_issuance import LinkIssuanceService
from earnko.services.notification_service import Notifier
from earnko.services.settlement_service import SettlementService
from earnko.services.wallet_ledger import WalletLedger
from earnko.services.webhook_ingester import WebhookIngester


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_adapters(request: Request) -> Dict[str, NetworkAdapter]:
    return request.app.state.adapters


def get_redirect_resolver(request: Request) -> Callable[[str], str]:
    return request.app.state.resolve_redirects


def get_link_service(
    database: Database = Depends(get_db),
    adapters: Dict[str, NetworkAdapter] = Depends(get_adapters),
    notifier: Notifier = Depends(get_notifier),
    resolve_redirects: Callable[[str], str] = Depends(get_redirect_resolver),
) -> LinkIssuanceService:
    return LinkIssuanceService(database, adapters, notifier=notifier, resolve_redirects=resolve_redirects)


def get_ingester(
    database: Database = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> WebhookIngester:
    return WebhookIngester(database, notifier=notifier)


def get_settlement(
    database: Database = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> SettlementService:
    return SettlementService(database, notifier=notifier)


def get_commission_engine(database: Database = Depends(get_db)) -> CommissionEngine:
    return CommissionEngine(database)


def get_wallet_ledger(database: Database = Depends(get_db)) -> WalletLedger:
    return WalletLedger(database)
