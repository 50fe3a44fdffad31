"""
Local set of wallet-owned outputs, keyed by outpoint.
"""

from __future__ import annotations

from collections.abc import Iterable

from btccore.transaction import OutPoint
from loguru import logger

from btcwallet.wallet.models import LocalUtxo


class UtxoSet:
    """
    Wallet-owned outputs keyed by outpoint.

    Entries are never deleted. Spent outputs stay so history and balances can
    be recomputed, and ``is_spent`` only ever goes from False to True. The one
    way to un-spend an output (after a reorg) is ``replace`` with a freshly
    scanned set.
    """

    def __init__(self, utxos: Iterable[LocalUtxo] = ()):
        self._utxos: dict[OutPoint, LocalUtxo] = {}
        for utxo in utxos:
            self.insert_or_update(utxo)

    def insert_or_update(self, utxo: LocalUtxo) -> LocalUtxo:
        """Insert ``utxo`` or refresh an existing entry, keeping a spent flag sticky."""
        existing = self._utxos.get(utxo.outpoint)
        if existing is not None and existing.is_spent and not utxo.is_spent:
            utxo = utxo.spent()
        self._utxos[utxo.outpoint] = utxo
        return utxo

    def mark_spent(self, outpoint: OutPoint) -> bool:
        """
        Flag ``outpoint`` as spent.

        Returns False when the outpoint is not ours, which is the normal case
        for inputs funded by other wallets.
        """
        existing = self._utxos.get(outpoint)
        if existing is None:
            return False
        if not existing.is_spent:
            self._utxos[outpoint] = existing.spent()
            logger.debug(f"Marked {outpoint} as spent")
        return True

    def replace(self, utxos: Iterable[LocalUtxo]) -> None:
        """Replace the whole set (reorg resync)."""
        fresh = UtxoSet(utxos)
        self._utxos = fresh._utxos

    def get(self, outpoint: OutPoint) -> LocalUtxo | None:
        return self._utxos.get(outpoint)

    def snapshot(self) -> list[LocalUtxo]:
        """All entries, spent ones included. Order carries no meaning."""
        return list(self._utxos.values())

    def unspent(self) -> list[LocalUtxo]:
        return [utxo for utxo in self._utxos.values() if not utxo.is_spent]

    def copy(self) -> UtxoSet:
        clone = UtxoSet()
        clone._utxos = dict(self._utxos)
        return clone

    def __len__(self) -> int:
        return len(self._utxos)

    def __contains__(self, outpoint: object) -> bool:
        return outpoint in self._utxos

    def __iter__(self):
        return iter(self._utxos.values())
