"""
btccore - Bitcoin primitives for btcwallet-ng

Provides the transaction codec, script/address model, network parameters
and shared settings.
"""

from btccore.bitcoin import Address, AddressDecodeError, Script
from btccore.models import NetworkType
from btccore.transaction import CodecError, OutPoint, Transaction, TxIn, TxOut
from btccore.version import __version__

__all__ = [
    "Address",
    "AddressDecodeError",
    "CodecError",
    "NetworkType",
    "OutPoint",
    "Script",
    "Transaction",
    "TxIn",
    "TxOut",
    "__version__",
]
