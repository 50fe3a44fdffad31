"""
Tests for balance aggregation.
"""

from __future__ import annotations

import pytest
from btccore.transaction import OutPoint
from pydantic import ValidationError

from btcwallet.wallet.balance import compute_balance
from btcwallet.wallet.models import Balance, KeychainKind, LocalUtxo

TIP = 800_000


def utxo(
    value: int,
    height: int | None = None,
    keychain: KeychainKind = KeychainKind.EXTERNAL,
    coinbase: bool = False,
    spent: bool = False,
    txid: str = "aa" * 32,
    vout: int = 0,
) -> LocalUtxo:
    return LocalUtxo(
        outpoint=OutPoint(txid, vout),
        value=value,
        script_pubkey="0014" + "00" * 20,
        keychain=keychain,
        is_spent=spent,
        address="bc1qqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqq",
        confirmation_height=height,
        is_coinbase=coinbase,
    )


def assert_conserved(balance: Balance) -> None:
    assert balance.total == (
        balance.immature + balance.trusted_pending + balance.untrusted_pending + balance.confirmed
    )
    assert balance.spendable == balance.trusted_pending + balance.confirmed
    assert balance.total >= balance.spendable >= balance.confirmed >= 0


class TestComputeBalance:
    def test_single_confirmed_output(self) -> None:
        balance = compute_balance([utxo(50_000, height=TIP - 1)], TIP)

        assert balance.as_dict() == {
            "immature": 0,
            "trusted_pending": 0,
            "untrusted_pending": 0,
            "confirmed": 50_000,
            "spendable": 50_000,
            "total": 50_000,
        }

    def test_empty(self) -> None:
        balance = compute_balance([], TIP)
        assert balance == Balance()
        assert balance.total == 0

    def test_never_synced(self) -> None:
        assert compute_balance([], None) == Balance()

    def test_spent_outputs_skipped(self) -> None:
        balance = compute_balance([utxo(1_000, height=TIP, spent=True)], TIP)
        assert balance.total == 0

    def test_immature_coinbase(self) -> None:
        # 99 confirmations
        balance = compute_balance([utxo(625_000_000, height=TIP - 98, coinbase=True)], TIP)
        assert balance.immature == 625_000_000
        assert balance.confirmed == 0
        assert balance.spendable == 0

    def test_mature_coinbase(self) -> None:
        # 100 confirmations
        balance = compute_balance([utxo(625_000_000, height=TIP - 99, coinbase=True)], TIP)
        assert balance.immature == 0
        assert balance.confirmed == 625_000_000

    def test_custom_maturity(self) -> None:
        entry = utxo(1_000, height=TIP - 4, coinbase=True)
        assert compute_balance([entry], TIP, coinbase_maturity=5).confirmed == 1_000
        assert compute_balance([entry], TIP, coinbase_maturity=6).immature == 1_000

    def test_unconfirmed_change_is_trusted(self) -> None:
        balance = compute_balance([utxo(3_000, keychain=KeychainKind.INTERNAL)], TIP)
        assert balance.trusted_pending == 3_000
        assert balance.spendable == 3_000

    def test_unconfirmed_receive_is_untrusted(self) -> None:
        balance = compute_balance([utxo(4_000)], TIP)
        assert balance.untrusted_pending == 4_000
        assert balance.spendable == 0
        assert balance.total == 4_000

    def test_trusted_txids(self) -> None:
        entry = utxo(4_000, txid="bb" * 32)
        balance = compute_balance([entry], TIP, trusted_txids=frozenset({"bb" * 32}))
        assert balance.trusted_pending == 4_000
        assert balance.untrusted_pending == 0

    def test_height_above_tip(self) -> None:
        balance = compute_balance(
            [utxo(1_000, height=TIP + 2), utxo(2_000, height=TIP + 2, coinbase=True, vout=1)], TIP
        )
        assert balance.confirmed == 1_000
        assert balance.immature == 2_000

    def test_unresolved_address_still_counted(self) -> None:
        entry = LocalUtxo(
            outpoint=OutPoint("cc" * 32, 0),
            value=9_000,
            script_pubkey="6a00",
            keychain=KeychainKind.EXTERNAL,
            address_error="Unsupported scriptPubKey: 6a00",
            confirmation_height=TIP,
        )
        assert compute_balance([entry], TIP).confirmed == 9_000

    def test_mixed_conservation(self) -> None:
        utxos = [
            utxo(50_000, height=TIP - 1, vout=0),
            utxo(10_000, height=TIP - 10, coinbase=True, vout=1),
            utxo(7_000, keychain=KeychainKind.INTERNAL, vout=2),
            utxo(3_000, vout=3),
            utxo(99_999, height=TIP, spent=True, vout=4),
        ]
        balance = compute_balance(utxos, TIP)

        assert balance.confirmed == 50_000
        assert balance.immature == 10_000
        assert balance.trusted_pending == 7_000
        assert balance.untrusted_pending == 3_000
        assert balance.total == 70_000
        assert balance.spendable == 57_000
        assert_conserved(balance)


class TestBalanceModel:
    def test_negative_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Balance(confirmed=-1)

    def test_frozen(self) -> None:
        balance = Balance(confirmed=5)
        with pytest.raises(ValidationError):
            balance.confirmed = 6  # type: ignore[misc]

    def test_derived_fields(self) -> None:
        balance = Balance(immature=1, trusted_pending=2, untrusted_pending=4, confirmed=8)
        assert balance.spendable == 10
        assert balance.total == 15
        assert_conserved(balance)
