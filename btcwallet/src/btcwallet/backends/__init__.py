"""
Blockchain backend implementations.
"""

from btcwallet.backends.base import BackendError, BlockchainBackend, ScannedTransaction, SyncResult
from btcwallet.backends.esplora import EsploraBackend

__all__ = [
    "BackendError",
    "BlockchainBackend",
    "EsploraBackend",
    "ScannedTransaction",
    "SyncResult",
]
