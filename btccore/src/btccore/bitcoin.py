"""
Bitcoin primitives shared by the wallet packages.

This module provides:
- Hash functions (hash160, hash256, sha256)
- Varint encoding
- Output script <-> address conversion (bech32/bech32m, base58check)

Uses external libraries for the address encodings:
- bech32: BIP173/BIP350 segwit address encoding
- base58: Base58Check encoding for legacy addresses
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

import base58
import bech32 as bech32_lib

from btccore.constants import SATS_PER_BTC
from btccore.models import NetworkType

# Network prefixes for address encoding
HRP_MAP = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

# Base58 version bytes
P2PKH_VERSION = {
    NetworkType.MAINNET: 0x00,
    NetworkType.TESTNET: 0x6F,
    NetworkType.SIGNET: 0x6F,
    NetworkType.REGTEST: 0x6F,
}

P2SH_VERSION = {
    NetworkType.MAINNET: 0x05,
    NetworkType.TESTNET: 0xC4,
    NetworkType.SIGNET: 0xC4,
    NetworkType.REGTEST: 0xC4,
}


class AddressDecodeError(ValueError):
    """A script or address string has no standard address form for the network."""


# =============================================================================
# Amount Utilities
# =============================================================================


def sats_to_btc(sats: int) -> float:
    """Convert satoshis to BTC. Only use for display/output."""
    return sats / SATS_PER_BTC


def format_amount(sats: int, include_unit: bool = True) -> str:
    """
    Format satoshi amount as string.
    Default: '1,000,000 sats (0.01000000 BTC)'
    """
    if include_unit:
        return f"{sats:,} sats ({sats_to_btc(sats):.8f} BTC)"
    return f"{sats:,}"


# =============================================================================
# Hash Functions
# =============================================================================


def hash160(data: bytes) -> bytes:
    """
    RIPEMD160(SHA256(data)) - Used for Bitcoin addresses.

    Args:
        data: Input data to hash

    Returns:
        20-byte hash
    """
    return hashlib.new("ripemd160", hashlib.sha256(data).digest()).digest()


def hash256(data: bytes) -> bytes:
    """
    SHA256(SHA256(data)) - Used for Bitcoin txids and block hashes.

    Args:
        data: Input data to hash

    Returns:
        32-byte hash
    """
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def sha256(data: bytes) -> bytes:
    """Single SHA256 hash."""
    return hashlib.sha256(data).digest()


# =============================================================================
# Varint Encoding
# =============================================================================


def encode_varint(n: int) -> bytes:
    """
    Encode integer as Bitcoin varint (CompactSize).

    Args:
        n: Integer to encode

    Returns:
        Encoded bytes
    """
    if n < 0:
        raise ValueError(f"varint cannot encode negative value {n}")
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


# =============================================================================
# Address Encoding/Decoding
# =============================================================================


def get_hrp(network: str | NetworkType) -> str:
    """
    Get bech32 human-readable part for network.

    Args:
        network: Network type (string or enum)

    Returns:
        HRP string (bc, tb, bcrt)
    """
    return HRP_MAP[NetworkType(network)]


def pubkey_to_p2wpkh_script(pubkey: bytes | str) -> bytes:
    """
    Create P2WPKH scriptPubKey from public key.

    Args:
        pubkey: 33-byte compressed public key (bytes or hex string)

    Returns:
        22-byte P2WPKH scriptPubKey (OP_0 <20-byte-hash>)
    """
    if isinstance(pubkey, str):
        pubkey = bytes.fromhex(pubkey)

    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")

    return bytes([0x00, 0x14]) + hash160(pubkey)


def pubkey_to_p2wpkh_address(pubkey: bytes | str, network: str | NetworkType = "mainnet") -> str:
    """Convert compressed public key to P2WPKH (native SegWit) address."""
    return scriptpubkey_to_address(pubkey_to_p2wpkh_script(pubkey), network)


def _encode_segwit(hrp: str, witver: int, witprog: bytes) -> str:
    result = bech32_lib.encode(hrp, witver, witprog)
    if result is None:
        raise AddressDecodeError(f"Failed to bech32-encode witness program {witprog.hex()}")
    return result


def scriptpubkey_to_address(scriptpubkey: bytes, network: str | NetworkType = "mainnet") -> str:
    """
    Convert scriptPubKey to address.

    Supports P2WPKH, P2WSH, P2TR, P2PKH, P2SH.

    Args:
        scriptpubkey: scriptPubKey bytes
        network: Network type

    Returns:
        Bitcoin address string

    Raises:
        AddressDecodeError: If the script has no standard address form
    """
    network = NetworkType(network)
    hrp = get_hrp(network)

    # P2WPKH
    if len(scriptpubkey) == 22 and scriptpubkey[0] == 0x00 and scriptpubkey[1] == 0x14:
        return _encode_segwit(hrp, 0, scriptpubkey[2:])

    # P2WSH
    if len(scriptpubkey) == 34 and scriptpubkey[0] == 0x00 and scriptpubkey[1] == 0x20:
        return _encode_segwit(hrp, 0, scriptpubkey[2:])

    # P2TR
    if len(scriptpubkey) == 34 and scriptpubkey[0] == 0x51 and scriptpubkey[1] == 0x20:
        return _encode_segwit(hrp, 1, scriptpubkey[2:])

    # P2PKH
    if (
        len(scriptpubkey) == 25
        and scriptpubkey[0] == 0x76
        and scriptpubkey[1] == 0xA9
        and scriptpubkey[2] == 0x14
        and scriptpubkey[23] == 0x88
        and scriptpubkey[24] == 0xAC
    ):
        payload = bytes([P2PKH_VERSION[network]]) + scriptpubkey[3:23]
        return base58.b58encode_check(payload).decode("ascii")

    # P2SH
    if (
        len(scriptpubkey) == 23
        and scriptpubkey[0] == 0xA9
        and scriptpubkey[1] == 0x14
        and scriptpubkey[22] == 0x87
    ):
        payload = bytes([P2SH_VERSION[network]]) + scriptpubkey[2:22]
        return base58.b58encode_check(payload).decode("ascii")

    raise AddressDecodeError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")


def address_to_scriptpubkey(address: str, network: str | NetworkType = "mainnet") -> bytes:
    """
    Convert Bitcoin address to scriptPubKey.

    The address must belong to ``network``; an address for another network is
    rejected rather than silently accepted.

    Supports:
    - P2WPKH / P2WSH (bc1q..., tb1q..., bcrt1q...)
    - P2TR (bc1p... taproot)
    - P2PKH (1..., m..., n...)
    - P2SH (3..., 2...)

    Raises:
        AddressDecodeError: If the address is malformed or for another network
    """
    network = NetworkType(network)
    hrp = get_hrp(network)

    if address.lower().startswith(hrp + "1"):
        witver, witprog = bech32_lib.decode(hrp, address)
        if witver is None or witprog is None:
            raise AddressDecodeError(f"Invalid bech32 address: {address}")

        program = bytes(witprog)
        if witver == 0:
            if len(program) == 20:
                # P2WPKH: OP_0 <20-byte-pubkeyhash>
                return bytes([0x00, 0x14]) + program
            if len(program) == 32:
                # P2WSH: OP_0 <32-byte-scripthash>
                return bytes([0x00, 0x20]) + program
        elif witver == 1 and len(program) == 32:
            # P2TR: OP_1 <32-byte-pubkey>
            return bytes([0x51, 0x20]) + program

        raise AddressDecodeError(f"Unsupported witness program v{witver} in {address}")

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise AddressDecodeError(f"Invalid address {address!r} for {network.value}: {e}") from e

    if len(decoded) != 21:
        raise AddressDecodeError(f"Invalid base58 payload length in {address}")

    version = decoded[0]
    payload = decoded[1:]

    if version == P2PKH_VERSION[network]:
        # P2PKH: OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return bytes([0x76, 0xA9, 0x14]) + payload + bytes([0x88, 0xAC])
    if version == P2SH_VERSION[network]:
        # P2SH: OP_HASH160 <20-byte-scripthash> OP_EQUAL
        return bytes([0xA9, 0x14]) + payload + bytes([0x87])

    raise AddressDecodeError(f"Address version {version:#04x} is not valid on {network.value}")


# =============================================================================
# Script / Address Model
# =============================================================================


@dataclass(frozen=True)
class Script:
    """An output script (scriptPubKey)."""

    raw: bytes

    @classmethod
    def from_hex(cls, script_hex: str) -> Script:
        return cls(bytes.fromhex(script_hex))

    @classmethod
    def from_address(cls, address: str, network: str | NetworkType) -> Script:
        return cls(address_to_scriptpubkey(address, network))

    @property
    def hex(self) -> str:
        return self.raw.hex()

    @property
    def is_p2wpkh(self) -> bool:
        return len(self.raw) == 22 and self.raw[:2] == b"\x00\x14"

    @property
    def is_p2wsh(self) -> bool:
        return len(self.raw) == 34 and self.raw[:2] == b"\x00\x20"

    @property
    def is_p2tr(self) -> bool:
        return len(self.raw) == 34 and self.raw[:2] == b"\x51\x20"

    @property
    def is_op_return(self) -> bool:
        return len(self.raw) > 0 and self.raw[0] == 0x6A

    def to_address(self, network: str | NetworkType) -> str:
        """Render as an address string for ``network`` (AddressDecodeError if non-standard)."""
        return scriptpubkey_to_address(self.raw, network)


@dataclass(frozen=True)
class Address:
    """A validated, network-qualified address."""

    address: str
    network: NetworkType

    @classmethod
    def parse(cls, address: str, network: str | NetworkType) -> Address:
        network = NetworkType(network)
        # Validates by round-tripping through the script form
        address_to_scriptpubkey(address, network)
        return cls(address=address, network=network)

    @property
    def script_pubkey(self) -> Script:
        return Script(address_to_scriptpubkey(self.address, self.network))

    def __str__(self) -> str:
        return self.address
