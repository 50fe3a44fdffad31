"""
Wallet state: keys, address indices, UTXOs, balances and history.
"""

from btcwallet.wallet.address_index import (
    AddressIndex,
    AddressIndexController,
    LastUnused,
    New,
    Peek,
    Reset,
)
from btcwallet.wallet.balance import compute_balance
from btcwallet.wallet.bip32 import HDKey
from btcwallet.wallet.keys import Bip84KeyProvider, DerivationError, DescriptorProvider
from btcwallet.wallet.models import (
    AddressInfo,
    Balance,
    BlockTime,
    KeychainKind,
    LocalUtxo,
    TransactionDetails,
)
from btcwallet.wallet.reconcile import reconcile
from btcwallet.wallet.utxo_set import UtxoSet

__all__ = [
    "AddressIndex",
    "AddressIndexController",
    "AddressInfo",
    "Balance",
    "Bip84KeyProvider",
    "BlockTime",
    "DerivationError",
    "DescriptorProvider",
    "HDKey",
    "KeychainKind",
    "LastUnused",
    "LocalUtxo",
    "New",
    "Peek",
    "Reset",
    "TransactionDetails",
    "UtxoSet",
    "compute_balance",
    "reconcile",
]
