"""
Wallet service: the facade tying keys, address indices, a backend and the
derived wallet state together.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from btccore.constants import COINBASE_MATURITY, DEFAULT_STOP_GAP
from btccore.models import NetworkType
from btccore.transaction import OutPoint, Transaction
from loguru import logger

from btcwallet.backends.base import BlockchainBackend, SyncResult
from btcwallet.progress import ProgressBridge, ProgressObserver
from btcwallet.wallet.address_index import AddressIndex, AddressIndexController, New, Peek
from btcwallet.wallet.balance import compute_balance
from btcwallet.wallet.keys import DescriptorProvider
from btcwallet.wallet.models import (
    AddressInfo,
    Balance,
    KeychainKind,
    LocalUtxo,
    ScannedOutput,
    TransactionDetails,
)
from btcwallet.wallet.reconcile import WalletOwnership, find_trusted_txids, reconcile
from btcwallet.wallet.store import AddressIndexStore
from btcwallet.wallet.utxo_set import UtxoSet


@dataclass(frozen=True)
class WalletState:
    """
    Everything derived from one sync.

    Published as a whole and never mutated afterwards, so readers holding a
    reference see a consistent view.
    """

    tip_height: int | None = None
    utxos: UtxoSet = field(default_factory=UtxoSet)
    transactions: dict[str, TransactionDetails] = field(default_factory=dict)
    raw_transactions: dict[str, Transaction] = field(default_factory=dict)
    trusted_txids: frozenset[str] = frozenset()
    used_indices: dict[KeychainKind, frozenset[int]] = field(default_factory=dict)


class WalletService:
    """
    BIP84 wallet state tracker.

    ``sync`` builds a complete new ``WalletState`` from backend results and
    swaps it in under a lock. A sync that fails or is cancelled leaves the
    previous state untouched.
    """

    def __init__(
        self,
        provider: DescriptorProvider,
        backend: BlockchainBackend,
        stop_gap: int = DEFAULT_STOP_GAP,
        coinbase_maturity: int = COINBASE_MATURITY,
        store: AddressIndexStore | None = None,
    ):
        if stop_gap < 1:
            raise ValueError(f"stop_gap must be positive, got {stop_gap}")

        self.provider = provider
        self.backend = backend
        self.stop_gap = stop_gap
        self.coinbase_maturity = coinbase_maturity
        self.store = store

        self.addresses = (
            store.load(provider) if store is not None else AddressIndexController(provider)
        )
        self._lock = threading.Lock()
        self._state = WalletState()

        logger.info(f"Initialized wallet on {provider.network.value} (stop_gap={stop_gap})")

    @property
    def network(self) -> NetworkType:
        return self.provider.network

    @property
    def state(self) -> WalletState:
        with self._lock:
            return self._state

    @property
    def tip_height(self) -> int | None:
        return self.state.tip_height

    # =========================================================================
    # Addresses
    # =========================================================================

    def get_address(
        self,
        strategy: AddressIndex | None = None,
        keychain: KeychainKind = KeychainKind.EXTERNAL,
    ) -> AddressInfo:
        """Hand out an address (``New`` by default) and persist the cursor."""
        strategy = strategy if strategy is not None else New()
        info = self.addresses.next_address(strategy, keychain)
        if not isinstance(strategy, Peek):
            self._persist()
        return info

    def is_mine(self, script_pubkey: bytes) -> bool:
        return self.provider.owns_script(script_pubkey) is not None

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.addresses)

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync(self, progress: ProgressObserver | None = None) -> WalletState:
        """
        Sync with the backend and publish the new wallet state.

        Raises:
            BackendError: If the backend fails; the previous state is kept
        """
        bridge = ProgressBridge(progress)

        self._derive_issued_window()

        result = await self.backend.sync(self.provider, self.stop_gap, bridge)
        new_state = self._build_state(result)

        # Readers see both the new outputs and the matching used indices, or neither
        with self.addresses.exclusive(), self._lock:
            self._state = new_state
            self.addresses.observe_all(new_state.used_indices)
        self._persist()

        logger.info(
            f"Synced to height {new_state.tip_height}: {len(new_state.transactions)} txs, "
            f"{len(new_state.utxos.unspent())} unspent outputs"
        )
        return new_state

    def _derive_issued_window(self) -> None:
        """
        Make the most recently issued addresses recognizable.

        A cursor moved by ``Reset`` can sit far beyond the scan's gap window.
        Only the ``stop_gap`` indices ending at the cursor are derived, never
        the whole range from 0.
        """
        for kind in KeychainKind:
            cursor = self.addresses.current_index(kind)
            if cursor is None:
                continue
            for index in range(max(0, cursor - self.stop_gap + 1), cursor + 1):
                self.provider.derive_script(kind, index)

    def _build_state(self, result: SyncResult) -> WalletState:
        utxos = UtxoSet()
        used: dict[KeychainKind, set[int]] = {kind: set() for kind in KeychainKind}
        prevouts: dict[OutPoint, int] = {}
        raw: dict[str, Transaction] = {}

        # Outputs first so spends are matched regardless of backend ordering
        for scanned in result.transactions:
            tx = scanned.transaction
            txid = tx.txid
            raw[txid] = tx
            prevouts.update(scanned.prevout_values)
            height = scanned.confirmation_time.height if scanned.confirmation_time else None

            for vout, out in enumerate(tx.outputs):
                owner = self.provider.index_of(out.script_pubkey)
                if owner is None:
                    continue
                keychain, index = owner
                used[keychain].add(index)
                utxo = LocalUtxo.from_scanned(
                    ScannedOutput(
                        outpoint=OutPoint(txid, vout),
                        value=out.value,
                        script_pubkey=out.script_pubkey,
                        keychain=keychain,
                        confirmation_height=height,
                        is_coinbase=tx.is_coinbase,
                    ),
                    self.provider.network,
                )
                if utxo.address_error:
                    logger.warning(f"Output {utxo.outpoint} has no address: {utxo.address_error}")
                utxos.insert_or_update(utxo)

        for scanned in result.transactions:
            if scanned.transaction.is_coinbase:
                continue
            for inp in scanned.transaction.inputs:
                utxos.mark_spent(inp.previous_output)

        lookup = WalletOwnership(utxos, self.provider, prevouts)
        details = {
            scanned.txid: reconcile(scanned.transaction, lookup, scanned.confirmation_time)
            for scanned in result.transactions
        }
        confirmed = {txid for txid, d in details.items() if d.is_confirmed}
        trusted = find_trusted_txids(raw.values(), lookup, confirmed)

        return WalletState(
            tip_height=result.tip_height,
            utxos=utxos,
            transactions=details,
            raw_transactions=raw,
            trusted_txids=trusted,
            used_indices={kind: frozenset(indices) for kind, indices in used.items()},
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_balance(self) -> Balance:
        state = self.state
        return compute_balance(
            state.utxos.unspent(),
            state.tip_height,
            trusted_txids=state.trusted_txids,
            coinbase_maturity=self.coinbase_maturity,
        )

    def list_unspent(self) -> list[LocalUtxo]:
        return self.state.utxos.unspent()

    def list_outputs(self) -> list[LocalUtxo]:
        """All wallet outputs, spent ones included."""
        return self.state.utxos.snapshot()

    def list_transactions(self) -> list[TransactionDetails]:
        """Wallet transactions, unconfirmed first, then newest block first."""

        def sort_key(details: TransactionDetails) -> tuple[int, int, str]:
            if details.confirmation_time is None:
                return (0, 0, details.txid)
            return (1, -details.confirmation_time.height, details.txid)

        return sorted(self.state.transactions.values(), key=sort_key)

    def get_transaction(self, txid: str) -> TransactionDetails | None:
        return self.state.transactions.get(txid.lower())

    def get_raw_transaction(self, txid: str) -> Transaction | None:
        return self.state.raw_transactions.get(txid.lower())

    async def close(self) -> None:
        await self.backend.close()
