"""
Wallet ledger $inc application
"""
from conftest import create_user, wallet_of
from earnko.services.wallet_ledger import WalletLedger


def test_apply_new_and_transition(database):
    create_user(database, "u1")
    ledger = WalletLedger(database)

    ledger.apply_new("u1", "pending", 50)
    ledger.apply_transition("u1", "pending", "confirmed", 50, 50)

    wallet = wallet_of(database, "u1")
    assert wallet["pending_cashback"] == 0
    assert wallet["confirmed_cashback"] == 50
    assert wallet["available_balance"] == 50
    assert wallet["total_earnings"] == 50
    assert wallet["pending_commissions"] == 0
    assert wallet["total_commissions"] == 50


def test_missing_user_is_skipped(database):
    assert WalletLedger(database).apply_deltas("ghost", {"wallet.pending_cashback": 5}) is False
    assert WalletLedger(database).apply_deltas(None, {"wallet.pending_cashback": 5}) is False


def test_get_wallet(database):
    create_user(database, "u1")
    wallet = WalletLedger(database).get_wallet("u1")
    assert wallet["available_balance"] == 0.0
    assert wallet["paid_commissions"] == 0.0
    assert WalletLedger(database).get_wallet("ghost") is None
