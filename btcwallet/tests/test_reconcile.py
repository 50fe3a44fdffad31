"""
Tests for transaction detail reconciliation.
"""

from __future__ import annotations

from btccore.transaction import OutPoint

from btcwallet.wallet.models import BlockTime, KeychainKind, LocalUtxo
from btcwallet.wallet.reconcile import WalletOwnership, find_trusted_txids, reconcile
from btcwallet.wallet.utxo_set import UtxoSet


class DictLookup:
    def __init__(
        self,
        owned: dict[OutPoint, int] | None = None,
        prevouts: dict[OutPoint, int] | None = None,
        mine: set[bytes] | None = None,
    ):
        self.owned = owned or {}
        self.prevouts = prevouts or {}
        self.mine = mine or set()

    def owned_value(self, outpoint: OutPoint) -> int | None:
        return self.owned.get(outpoint)

    def prevout_value(self, outpoint: OutPoint) -> int | None:
        return self.prevouts.get(outpoint)

    def is_mine(self, script_pubkey: bytes) -> bool:
        return script_pubkey in self.mine


OWN_A = OutPoint("aa" * 32, 0)
OWN_B = OutPoint("aa" * 32, 1)
OTHER = OutPoint("bb" * 32, 0)
MY_SCRIPT = b"\x00\x14" + b"\x01" * 20
THEIR_SCRIPT = b"\x00\x14" + b"\x02" * 20


class TestReconcile:
    def test_spend_with_change(self, make_tx) -> None:
        tx = make_tx([OWN_A, OWN_B], [(60_000, THEIR_SCRIPT), (39_000, MY_SCRIPT)])
        lookup = DictLookup(owned={OWN_A: 50_000, OWN_B: 50_000}, mine={MY_SCRIPT})

        details = reconcile(tx, lookup)

        assert details.txid == tx.txid
        assert details.sent == 100_000
        assert details.received == 39_000
        assert details.fee == 1_000
        assert details.net == -61_000
        assert details.confirmation_time is None

    def test_incoming_with_backend_prevouts(self, make_tx) -> None:
        tx = make_tx([OTHER], [(20_000, MY_SCRIPT), (5_000, THEIR_SCRIPT)])
        lookup = DictLookup(prevouts={OTHER: 25_500}, mine={MY_SCRIPT})

        details = reconcile(tx, lookup, BlockTime(height=10, timestamp=1_700_000_000))

        assert details.sent == 0
        assert details.received == 20_000
        assert details.fee == 500
        assert details.is_confirmed
        assert details.confirmation_time.height == 10

    def test_unresolvable_input_gives_no_fee(self, make_tx) -> None:
        tx = make_tx([OWN_A, OTHER], [(70_000, THEIR_SCRIPT)])
        lookup = DictLookup(owned={OWN_A: 50_000})

        details = reconcile(tx, lookup)

        assert details.fee is None
        assert details.sent == 50_000
        assert details.received == 0

    def test_coinbase_has_zero_fee(self, make_tx) -> None:
        tx = make_tx([], [(625_000_000, MY_SCRIPT)], coinbase=True)
        details = reconcile(tx, DictLookup(mine={MY_SCRIPT}))

        assert details.fee == 0
        assert details.sent == 0
        assert details.received == 625_000_000

    def test_inconsistent_values_drop_fee(self, make_tx) -> None:
        tx = make_tx([OTHER], [(10_000, MY_SCRIPT)])
        details = reconcile(tx, DictLookup(prevouts={OTHER: 9_000}, mine={MY_SCRIPT}))
        assert details.fee is None

    def test_owned_value_preferred_over_prevout(self, make_tx) -> None:
        tx = make_tx([OWN_A], [(9_000, THEIR_SCRIPT)])
        lookup = DictLookup(owned={OWN_A: 10_000}, prevouts={OWN_A: 1})
        details = reconcile(tx, lookup)
        assert details.sent == 10_000
        assert details.fee == 1_000

    def test_recompute_on_confirmation(self, make_tx) -> None:
        tx = make_tx([OTHER], [(1_000, MY_SCRIPT)])
        lookup = DictLookup(mine={MY_SCRIPT})

        pending = reconcile(tx, lookup)
        confirmed = reconcile(tx, lookup, BlockTime(height=5, timestamp=1))
        assert not pending.is_confirmed
        assert confirmed.is_confirmed
        assert pending.received == confirmed.received


class TestWalletOwnership:
    def test_lookup_over_utxo_set(self, stub_provider, make_tx) -> None:
        script = stub_provider.derive_script(KeychainKind.EXTERNAL, 0)
        funding = make_tx([OTHER], [(30_000, script)])
        outpoint = OutPoint(funding.txid, 0)
        utxos = UtxoSet(
            [
                LocalUtxo(
                    outpoint=outpoint,
                    value=30_000,
                    script_pubkey=script.hex(),
                    keychain=KeychainKind.EXTERNAL,
                    address=stub_provider.derive_address(KeychainKind.EXTERNAL, 0),
                )
            ]
        )
        lookup = WalletOwnership(utxos, stub_provider, {OTHER: 31_000})

        assert lookup.owned_value(outpoint) == 30_000
        assert lookup.owned_value(OTHER) is None
        assert lookup.prevout_value(OTHER) == 31_000
        assert lookup.is_mine(script)
        assert not lookup.is_mine(THEIR_SCRIPT)

        spend = make_tx([outpoint], [(29_500, THEIR_SCRIPT)])
        details = reconcile(spend, lookup)
        assert (details.sent, details.received, details.fee) == (30_000, 0, 500)


class TestFindTrustedTxids:
    def test_all_inputs_owned(self, make_tx) -> None:
        own_spend = make_tx([OWN_A, OWN_B], [(1_000, MY_SCRIPT)])
        mixed = make_tx([OWN_A, OTHER], [(1_000, MY_SCRIPT)], tag=1)
        incoming = make_tx([OTHER], [(1_000, MY_SCRIPT)], tag=2)
        coinbase = make_tx([], [(1_000, MY_SCRIPT)], coinbase=True)
        lookup = DictLookup(owned={OWN_A: 5_000, OWN_B: 5_000})

        trusted = find_trusted_txids([own_spend, mixed, incoming, coinbase], lookup)
        assert trusted == frozenset({own_spend.txid})

    def test_confirmed_excluded(self, make_tx) -> None:
        own_spend = make_tx([OWN_A], [(1_000, MY_SCRIPT)])
        lookup = DictLookup(owned={OWN_A: 5_000})
        assert find_trusted_txids([own_spend], lookup, {own_spend.txid}) == frozenset()
