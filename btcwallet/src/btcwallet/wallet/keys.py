"""
Descriptor key providers.

The wallet core only needs three things from its keys: the output script at
``(keychain, index)``, its address, and a reverse lookup from a script back to
the keychain and index that produced it. ``Bip84KeyProvider`` implements this
for BIP84 native segwit (``m/84'/coin'/account'/change/index``).
"""

from __future__ import annotations

import threading
from typing import Protocol

from btccore.bitcoin import scriptpubkey_to_address
from btccore.constants import HARDENED_OFFSET
from btccore.models import NetworkType
from loguru import logger
from mnemonic import Mnemonic

from btcwallet.wallet.bip32 import HDKey, mnemonic_to_seed
from btcwallet.wallet.models import KeychainKind


class DerivationError(Exception):
    """The descriptor cannot produce a script at the requested index."""


class DescriptorProvider(Protocol):
    """Source of wallet-owned output scripts."""

    network: NetworkType

    def derive_script(self, keychain: KeychainKind, index: int) -> bytes: ...

    def derive_address(self, keychain: KeychainKind, index: int) -> str: ...

    def owns_script(self, script: bytes) -> KeychainKind | None: ...

    def index_of(self, script: bytes) -> tuple[KeychainKind, int] | None: ...

    def ensure_derived(self, keychain: KeychainKind, up_to: int) -> None: ...


class Bip84KeyProvider:
    """
    BIP84 key provider backed by an HD master key.

    Branch keys (``.../0`` and ``.../1``) are derived once; child scripts are
    cached so that ``index_of`` can answer for every index derived so far.
    Call ``ensure_derived`` before a scan so the lookup covers the look-ahead
    window.
    """

    def __init__(
        self,
        master_key: HDKey,
        network: NetworkType | str = NetworkType.MAINNET,
        account: int = 0,
        max_index: int | None = None,
    ):
        self.network = NetworkType(network)
        self.account = account
        self.max_index = HARDENED_OFFSET - 1 if max_index is None else max_index

        account_path = f"m/84'/{self.network.coin_type}'/{account}'"
        account_key = master_key.derive(account_path)
        self._branches = {kind: account_key.child(kind.branch) for kind in KeychainKind}
        self.account_path = account_path

        self._lock = threading.Lock()
        self._scripts: dict[tuple[KeychainKind, int], bytes] = {}
        self._owners: dict[bytes, tuple[KeychainKind, int]] = {}

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        network: NetworkType | str = NetworkType.MAINNET,
        account: int = 0,
        passphrase: str = "",
        max_index: int | None = None,
    ) -> Bip84KeyProvider:
        """
        Build a provider from a BIP39 mnemonic.

        Raises:
            ValueError: If the mnemonic fails the BIP39 checksum
        """
        normalized = " ".join(mnemonic.split())
        if not Mnemonic("english").check(normalized):
            raise ValueError("Invalid BIP39 mnemonic (checksum or word list mismatch)")

        seed = mnemonic_to_seed(normalized, passphrase)
        return cls(HDKey.from_seed(seed), network=network, account=account, max_index=max_index)

    def get_path(self, keychain: KeychainKind, index: int) -> str:
        return f"{self.account_path}/{keychain.branch}/{index}"

    def derive_script(self, keychain: KeychainKind, index: int) -> bytes:
        """
        Return the P2WPKH script at ``(keychain, index)``.

        Raises:
            DerivationError: If the index is negative, hardened, beyond
                ``max_index``, or hits an invalid child key
        """
        if index < 0 or index >= HARDENED_OFFSET:
            raise DerivationError(f"Index {index} is outside the unhardened range")
        if index > self.max_index:
            raise DerivationError(f"Index {index} exceeds the descriptor limit {self.max_index}")

        key = (keychain, index)
        with self._lock:
            cached = self._scripts.get(key)
        if cached is not None:
            return cached

        try:
            script = self._branches[keychain].child(index).get_p2wpkh_script()
        except ValueError as e:
            raise DerivationError(f"Cannot derive {self.get_path(keychain, index)}: {e}") from e

        with self._lock:
            self._scripts[key] = script
            self._owners[script] = key
        return script

    def derive_address(self, keychain: KeychainKind, index: int) -> str:
        return scriptpubkey_to_address(self.derive_script(keychain, index), self.network)

    def ensure_derived(self, keychain: KeychainKind, up_to: int) -> None:
        """Derive and cache every index in ``[0, up_to]`` (capped at ``max_index``)."""
        last = min(up_to, self.max_index)
        for index in range(last + 1):
            self.derive_script(keychain, index)
        logger.debug(f"Derived {keychain.value} scripts up to index {last}")

    def owns_script(self, script: bytes) -> KeychainKind | None:
        owner = self.index_of(script)
        return owner[0] if owner else None

    def index_of(self, script: bytes) -> tuple[KeychainKind, int] | None:
        """Reverse lookup among scripts derived so far."""
        with self._lock:
            return self._owners.get(bytes(script))
