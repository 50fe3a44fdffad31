"""
Tests for script/address conversion.
"""

from __future__ import annotations

import pytest

from btccore.bitcoin import (
    Address,
    AddressDecodeError,
    Script,
    address_to_scriptpubkey,
    encode_varint,
    format_amount,
    hash160,
    pubkey_to_p2wpkh_script,
    scriptpubkey_to_address,
)
from btccore.models import NetworkType

# BIP173 test vector
P2WPKH_SCRIPT = bytes.fromhex("0014751e76e8199196d454941c45d1b3a323f1433bd6")
P2WPKH_MAINNET = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
P2WPKH_REGTEST = "bcrt1qw508d6qejxtdg4y5r3zarvary0c5xw7kygt080"

P2PKH_SCRIPT = bytes.fromhex("76a914" + "b8332d502a529571c6af4be66399cd33379071c5" + "88ac")
P2SH_SCRIPT = bytes.fromhex("a914" + "76fd7035cd26f1a32a5ab979e056713aac257968" + "87")


class TestScriptToAddress:
    def test_p2wpkh_mainnet(self) -> None:
        assert scriptpubkey_to_address(P2WPKH_SCRIPT, NetworkType.MAINNET) == P2WPKH_MAINNET

    def test_p2wpkh_regtest(self) -> None:
        assert scriptpubkey_to_address(P2WPKH_SCRIPT, "regtest") == P2WPKH_REGTEST

    def test_p2wsh(self) -> None:
        script = bytes([0x00, 0x20]) + bytes(32)
        address = scriptpubkey_to_address(script, "testnet")
        assert address.startswith("tb1q")
        assert address_to_scriptpubkey(address, "testnet") == script

    def test_p2tr_uses_bech32m(self) -> None:
        script = bytes([0x51, 0x20]) + bytes(range(32))
        address = scriptpubkey_to_address(script, "mainnet")
        assert address.startswith("bc1p")
        assert address_to_scriptpubkey(address, "mainnet") == script

    def test_p2pkh_prefixes(self) -> None:
        assert scriptpubkey_to_address(P2PKH_SCRIPT, "mainnet").startswith("1")
        assert scriptpubkey_to_address(P2PKH_SCRIPT, "testnet")[0] in "mn"

    def test_p2sh_prefixes(self) -> None:
        assert scriptpubkey_to_address(P2SH_SCRIPT, "mainnet").startswith("3")
        assert scriptpubkey_to_address(P2SH_SCRIPT, "regtest").startswith("2")

    @pytest.mark.parametrize(
        "script_hex",
        ["6a0568656c6c6f", "51", "", "0014" + "00" * 19],
    )
    def test_non_standard_raises(self, script_hex: str) -> None:
        with pytest.raises(AddressDecodeError):
            scriptpubkey_to_address(bytes.fromhex(script_hex), "mainnet")

    def test_address_decode_error_is_value_error(self) -> None:
        assert issubclass(AddressDecodeError, ValueError)


class TestAddressToScript:
    def test_bech32_round_trip(self) -> None:
        assert address_to_scriptpubkey(P2WPKH_MAINNET, "mainnet") == P2WPKH_SCRIPT

    def test_uppercase_bech32(self) -> None:
        assert address_to_scriptpubkey(P2WPKH_MAINNET.upper(), "mainnet") == P2WPKH_SCRIPT

    @pytest.mark.parametrize("script", [P2PKH_SCRIPT, P2SH_SCRIPT])
    def test_base58_round_trip(self, script: bytes) -> None:
        for network in ("mainnet", "testnet"):
            address = scriptpubkey_to_address(script, network)
            assert address_to_scriptpubkey(address, network) == script

    def test_wrong_network_bech32(self) -> None:
        with pytest.raises(AddressDecodeError):
            address_to_scriptpubkey(P2WPKH_MAINNET, "regtest")

    def test_wrong_network_base58(self) -> None:
        mainnet = scriptpubkey_to_address(P2PKH_SCRIPT, "mainnet")
        with pytest.raises(AddressDecodeError):
            address_to_scriptpubkey(mainnet, "testnet")

    def test_bad_checksum(self) -> None:
        broken = P2WPKH_MAINNET[:-1] + ("5" if P2WPKH_MAINNET[-1] != "5" else "6")
        with pytest.raises(AddressDecodeError):
            address_to_scriptpubkey(broken, "mainnet")

    def test_garbage(self) -> None:
        with pytest.raises(AddressDecodeError):
            address_to_scriptpubkey("not-an-address", "mainnet")


class TestScriptModel:
    def test_script_properties(self) -> None:
        script = Script(P2WPKH_SCRIPT)
        assert script.is_p2wpkh
        assert not script.is_p2wsh
        assert not script.is_p2tr
        assert script.hex == P2WPKH_SCRIPT.hex()
        assert script.to_address("mainnet") == P2WPKH_MAINNET

    def test_op_return(self) -> None:
        script = Script.from_hex("6a0568656c6c6f")
        assert script.is_op_return
        with pytest.raises(AddressDecodeError):
            script.to_address("mainnet")

    def test_from_address(self) -> None:
        assert Script.from_address(P2WPKH_REGTEST, "regtest") == Script(P2WPKH_SCRIPT)

    def test_address_parse(self) -> None:
        address = Address.parse(P2WPKH_MAINNET, "mainnet")
        assert address.network is NetworkType.MAINNET
        assert address.script_pubkey.raw == P2WPKH_SCRIPT
        assert str(address) == P2WPKH_MAINNET

    def test_address_parse_rejects_other_network(self) -> None:
        with pytest.raises(AddressDecodeError):
            Address.parse(P2WPKH_REGTEST, "mainnet")


class TestHelpers:
    def test_pubkey_to_p2wpkh_script(self) -> None:
        pubkey = bytes.fromhex("02" + "11" * 32)
        script = pubkey_to_p2wpkh_script(pubkey)
        assert script == b"\x00\x14" + hash160(pubkey)

    def test_pubkey_length_checked(self) -> None:
        with pytest.raises(ValueError):
            pubkey_to_p2wpkh_script(b"\x02" * 20)

    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, "00"),
            (0xFC, "fc"),
            (0xFD, "fdfd00"),
            (0xFFFF, "fdffff"),
            (0x10000, "fe00000100"),
            (0x100000000, "ff0000000001000000"),
        ],
    )
    def test_encode_varint(self, value: int, encoded: str) -> None:
        assert encode_varint(value).hex() == encoded

    def test_format_amount(self) -> None:
        assert format_amount(1_000_000) == "1,000,000 sats (0.01000000 BTC)"
        assert format_amount(50_000, include_unit=False) == "50,000"
