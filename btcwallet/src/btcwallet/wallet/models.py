"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from btccore.bitcoin import AddressDecodeError, scriptpubkey_to_address
from btccore.models import NetworkType
from btccore.transaction import OutPoint
from pydantic import BaseModel, ConfigDict, NonNegativeInt
from pydantic.dataclasses import dataclass as pydantic_dataclass


class KeychainKind(str, Enum):
    """Descriptor keychain an output belongs to."""

    EXTERNAL = "external"  # receive addresses, BIP32 change=0
    INTERNAL = "internal"  # change addresses, BIP32 change=1

    @property
    def branch(self) -> int:
        return 0 if self is KeychainKind.EXTERNAL else 1


@pydantic_dataclass(frozen=True)
class AddressInfo:
    """A derived address and the child index it was derived at."""

    index: NonNegativeInt
    address: str
    keychain: KeychainKind = KeychainKind.EXTERNAL


@pydantic_dataclass(frozen=True)
class BlockTime:
    """Height and timestamp of the block confirming a transaction."""

    height: NonNegativeInt
    timestamp: NonNegativeInt


@dataclass(frozen=True)
class ScannedOutput:
    """One wallet-owned output as reported by a sync pass."""

    outpoint: OutPoint
    value: int
    script_pubkey: bytes
    keychain: KeychainKind
    confirmation_height: int | None = None
    is_coinbase: bool = False


@dataclass(frozen=True)
class LocalUtxo:
    """
    A wallet-owned output.

    ``address`` is None when the script has no standard address form on the
    configured network; ``address_error`` then records why. Such outputs stay
    in the UTXO set so balances remain complete.
    """

    outpoint: OutPoint
    value: int
    script_pubkey: str
    keychain: KeychainKind
    is_spent: bool = False
    address: str | None = None
    address_error: str | None = None
    confirmation_height: int | None = None
    is_coinbase: bool = False

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"UTXO value cannot be negative: {self.value}")
        if (self.address is None) == (self.address_error is None):
            raise ValueError("Exactly one of address and address_error must be set")

    @classmethod
    def from_scanned(cls, scanned: ScannedOutput, network: NetworkType | str) -> LocalUtxo:
        """Materialize a scanned output, recording address failures instead of raising."""
        address: str | None = None
        address_error: str | None = None
        try:
            address = scriptpubkey_to_address(scanned.script_pubkey, network)
        except AddressDecodeError as e:
            address_error = str(e)

        return cls(
            outpoint=scanned.outpoint,
            value=scanned.value,
            script_pubkey=scanned.script_pubkey.hex(),
            keychain=scanned.keychain,
            address=address,
            address_error=address_error,
            confirmation_height=scanned.confirmation_height,
            is_coinbase=scanned.is_coinbase,
        )

    @property
    def is_resolved(self) -> bool:
        return self.address is not None

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_height is not None

    def spent(self) -> LocalUtxo:
        return replace(self, is_spent=True)


class Balance(BaseModel):
    """
    Wallet balance split by spendability class.

    ``spendable`` and ``total`` are derived, never stored, so they cannot
    drift from the four base classes.
    """

    model_config = ConfigDict(frozen=True)

    immature: NonNegativeInt = 0  # coinbase outputs not yet matured
    trusted_pending: NonNegativeInt = 0  # unconfirmed, from the wallet's own transactions
    untrusted_pending: NonNegativeInt = 0  # unconfirmed, received from outside
    confirmed: NonNegativeInt = 0  # confirmed and immediately spendable

    @property
    def spendable(self) -> int:
        return self.trusted_pending + self.confirmed

    @property
    def total(self) -> int:
        return self.immature + self.trusted_pending + self.untrusted_pending + self.confirmed

    def as_dict(self) -> dict[str, int]:
        return {
            "immature": self.immature,
            "trusted_pending": self.trusted_pending,
            "untrusted_pending": self.untrusted_pending,
            "confirmed": self.confirmed,
            "spendable": self.spendable,
            "total": self.total,
        }


@pydantic_dataclass(frozen=True)
class TransactionDetails:
    """
    A wallet transaction summary.

    ``fee`` is None when the backend could not resolve every spent input's
    value (e.g. a node without a transaction index). That is a data
    availability signal, not an error.
    """

    txid: str
    received: NonNegativeInt  # sum of owned outputs
    sent: NonNegativeInt  # sum of owned inputs
    fee: NonNegativeInt | None = None
    confirmation_time: BlockTime | None = None

    @property
    def net(self) -> int:
        """Effect on the wallet balance (negative when spending)."""
        return self.received - self.sent

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_time is not None
