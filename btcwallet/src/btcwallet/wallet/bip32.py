"""
BIP32 HD key derivation.
Implements the BIP84 (Native SegWit) derivation used by the wallet.
"""

from __future__ import annotations

import hashlib
import hmac

from btccore.bitcoin import pubkey_to_p2wpkh_address, pubkey_to_p2wpkh_script
from btccore.constants import HARDENED_OFFSET
from btccore.models import NetworkType
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from mnemonic import Mnemonic

# secp256k1 group order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


class HDKey:
    """
    Hierarchical Deterministic Key for Bitcoin.
    Implements BIP32 private derivation.
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey, chain_code: bytes, depth: int = 0):
        self.private_key = private_key
        self.public_key = private_key.public_key()
        self.chain_code = chain_code
        self.depth = depth

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_int = int.from_bytes(hmac_result[:32], "big")
        if not 0 < key_int < SECP256K1_N:
            raise ValueError("Seed produces an invalid master key")

        private_key = ec.derive_private_key(key_int, ec.SECP256K1())
        return cls(private_key, hmac_result[32:], depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/84'/0'/0'/0/0")
        ' or h indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        key = self
        for part in path.split("/")[1:]:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))
            if not 0 <= index < HARDENED_OFFSET:
                raise ValueError(f"Path component out of range: {part}")

            key = key.child(index + HARDENED_OFFSET if hardened else index)

        return key

    def child(self, index: int) -> HDKey:
        """Derive the child key at ``index`` (>= 2^31 means hardened)."""
        if not 0 <= index <= 0xFFFFFFFF:
            raise ValueError(f"Child index out of range: {index}")

        if index >= HARDENED_OFFSET:
            data = b"\x00" + self.get_private_key_bytes() + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        offset_int = int.from_bytes(hmac_result[:32], "big")
        if offset_int >= SECP256K1_N:
            raise ValueError(f"Invalid child key at index {index}")

        parent_key_int = self.private_key.private_numbers().private_value
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N
        if child_key_int == 0:
            raise ValueError(f"Invalid child key at index {index}")

        child_private_key = ec.derive_private_key(child_key_int, ec.SECP256K1())
        return HDKey(child_private_key, hmac_result[32:], depth=self.depth + 1)

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self.private_key.private_numbers().private_value.to_bytes(32, "big")

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=(
                serialization.PublicFormat.CompressedPoint
                if compressed
                else serialization.PublicFormat.UncompressedPoint
            ),
        )

    def get_p2wpkh_script(self) -> bytes:
        return pubkey_to_p2wpkh_script(self.get_public_key_bytes())

    def get_address(self, network: str | NetworkType = "mainnet") -> str:
        """Get P2WPKH (Native SegWit) address for this key"""
        return pubkey_to_p2wpkh_address(self.get_public_key_bytes(), network)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a BIP39 mnemonic (plus optional passphrase) to a 64-byte seed."""
    return Mnemonic.to_seed(mnemonic, passphrase=passphrase)
