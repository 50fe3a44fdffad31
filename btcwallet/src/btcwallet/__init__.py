"""
btcwallet - wallet state tracking with pluggable blockchain backends.
"""

from btcwallet.backends.base import BlockchainBackend
from btcwallet.wallet.service import WalletService

__all__ = ["BlockchainBackend", "WalletService"]
