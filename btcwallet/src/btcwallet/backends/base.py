"""
Base blockchain backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from btccore.transaction import OutPoint, Transaction

from btcwallet.progress import ProgressBridge
from btcwallet.wallet.keys import DescriptorProvider
from btcwallet.wallet.models import BlockTime


class BackendError(Exception):
    """The blockchain data source failed or returned unusable data."""


@dataclass(frozen=True)
class ScannedTransaction:
    """A wallet-relevant transaction as seen by the backend."""

    transaction: Transaction
    confirmation_time: BlockTime | None = None
    # Values of spent outputs the backend could resolve, wallet-owned or not
    prevout_values: dict[OutPoint, int] = field(default_factory=dict)

    @property
    def txid(self) -> str:
        return self.transaction.txid


@dataclass(frozen=True)
class SyncResult:
    tip_height: int
    transactions: list[ScannedTransaction] = field(default_factory=list)


class BlockchainBackend(ABC):
    """
    Abstract blockchain backend.

    A sync returns every transaction touching the wallet's scripts, scanning
    each keychain until ``stop_gap`` consecutive unused addresses are found.
    Implementations raise ``BackendError`` for any failure; partial results
    are never returned.
    """

    @abstractmethod
    async def sync(
        self,
        provider: DescriptorProvider,
        stop_gap: int,
        progress: ProgressBridge,
    ) -> SyncResult:
        """Scan the chain for wallet transactions."""

    async def close(self) -> None:
        """Release backend resources."""
