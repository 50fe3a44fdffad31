"""
Pytest configuration and fixtures for btcwallet tests.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from btccore.bitcoin import hash160, scriptpubkey_to_address
from btccore.models import NetworkType
from btccore.transaction import OutPoint, Transaction, TxIn, TxOut

from btcwallet.wallet.keys import DerivationError
from btcwallet.wallet.models import KeychainKind

FOREIGN_TXID = "f0" * 32


class StubProvider:
    """
    Deterministic descriptor provider without EC math.

    Scripts are P2WPKH outputs over hash160("<seed>/<keychain>/<index>").
    """

    def __init__(self, seed: str = "stub", max_index: int | None = None):
        self.network = NetworkType.REGTEST
        self.seed = seed
        self.max_index = max_index
        self.derive_calls = 0
        self._owners: dict[bytes, tuple[KeychainKind, int]] = {}

    def derive_script(self, keychain: KeychainKind, index: int) -> bytes:
        if index < 0 or (self.max_index is not None and index > self.max_index):
            raise DerivationError(f"index {index} out of range")
        self.derive_calls += 1
        script = b"\x00\x14" + hash160(f"{self.seed}/{keychain.value}/{index}".encode())
        self._owners[script] = (keychain, index)
        return script

    def derive_address(self, keychain: KeychainKind, index: int) -> str:
        return scriptpubkey_to_address(self.derive_script(keychain, index), self.network)

    def ensure_derived(self, keychain: KeychainKind, up_to: int) -> None:
        last = up_to if self.max_index is None else min(up_to, self.max_index)
        for index in range(last + 1):
            self.derive_script(keychain, index)

    def owns_script(self, script: bytes) -> KeychainKind | None:
        owner = self._owners.get(script)
        return owner[0] if owner else None

    def index_of(self, script: bytes) -> tuple[KeychainKind, int] | None:
        return self._owners.get(script)


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def test_network() -> str:
    """Test network"""
    return "regtest"


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    return StubProvider


@pytest.fixture
def make_tx() -> Callable[..., Transaction]:
    """
    Build a transaction from spent outpoints and ``(value, script)`` outputs.

    ``tag`` varies the locktime so otherwise identical transactions get
    distinct txids.
    """

    def _make_tx(
        spends: list[OutPoint],
        outputs: list[tuple[int, bytes]],
        tag: int = 0,
        coinbase: bool = False,
    ) -> Transaction:
        if coinbase:
            inputs = (TxIn(previous_output=OutPoint("00" * 32, 0xFFFFFFFF), script_sig=b"\x01"),)
        else:
            inputs = tuple(TxIn(previous_output=outpoint) for outpoint in spends)
        return Transaction(
            version=2,
            inputs=inputs,
            outputs=tuple(TxOut(value=value, script_pubkey=script) for value, script in outputs),
            locktime=tag,
        )

    return _make_tx


@pytest.fixture
def foreign_script() -> bytes:
    return b"\x00\x14" + hash160(b"somebody else")


@pytest.fixture
def foreign_outpoint() -> OutPoint:
    return OutPoint(FOREIGN_TXID, 0)
