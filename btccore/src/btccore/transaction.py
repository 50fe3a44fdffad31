"""
Consensus transaction codec.

Decodes and encodes transactions in the standard consensus serialization
(BIP144 for segwit), and computes size, weight and virtual size:

    weight = witness_bytes + 4 * non_witness_bytes
    vsize  = ceil(weight / 4)

The segwit marker and flag count as witness bytes.

Decoding is strict so that ``encode(decode(b)) == b`` holds for every input
that decodes at all: truncated data, trailing bytes, non-minimal varints,
unknown segwit flags and witness-flagged transactions without any witness
data are all rejected with CodecError.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from btccore.bitcoin import encode_varint, hash256
from btccore.constants import MAX_SEQUENCE, WITNESS_SCALE_FACTOR

NULL_TXID = "0" * 64

# Smallest possible encodings, used to reject absurd element counts early
_MIN_INPUT_SIZE = 32 + 4 + 1 + 4
_MIN_OUTPUT_SIZE = 8 + 1


class CodecError(ValueError):
    """Bytes are not exactly one well-formed consensus-encoded transaction."""


@dataclass(frozen=True)
class OutPoint:
    """A reference to a transaction output (txid in display byte order)."""

    txid: str
    vout: int

    def __post_init__(self) -> None:
        if len(self.txid) != 64:
            raise ValueError(f"txid must be 64 hex chars, got {len(self.txid)}")
        try:
            bytes.fromhex(self.txid)
        except ValueError as e:
            raise ValueError(f"txid is not hex: {self.txid!r}") from e
        if not 0 <= self.vout <= 0xFFFFFFFF:
            raise ValueError(f"vout out of range: {self.vout}")
        # Normalize case so equal outpoints hash equally
        object.__setattr__(self, "txid", self.txid.lower())

    @classmethod
    def parse(cls, ref: str) -> OutPoint:
        """Parse a ``txid:vout`` string."""
        txid, sep, vout = ref.rpartition(":")
        if not sep:
            raise ValueError(f"Outpoint must be txid:vout, got {ref!r}")
        return cls(txid=txid, vout=int(vout))

    @property
    def is_null(self) -> bool:
        """Coinbase inputs reference the null outpoint."""
        return self.txid == NULL_TXID and self.vout == 0xFFFFFFFF

    def serialize(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + struct.pack("<I", self.vout)

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class TxIn:
    """Transaction input."""

    previous_output: OutPoint
    script_sig: bytes = b""
    sequence: int = MAX_SEQUENCE
    witness: tuple[bytes, ...] = ()


@dataclass(frozen=True)
class TxOut:
    """Transaction output."""

    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class Transaction:
    """A decoded Bitcoin transaction."""

    version: int
    inputs: tuple[TxIn, ...]
    outputs: tuple[TxOut, ...]
    locktime: int
    _cache: dict[str, bytes] = field(
        default_factory=dict, init=False, repr=False, compare=False, hash=False
    )

    @classmethod
    def from_bytes(cls, data: bytes) -> Transaction:
        return decode_transaction(data)

    @classmethod
    def from_hex(cls, tx_hex: str) -> Transaction:
        try:
            data = bytes.fromhex(tx_hex)
        except ValueError as e:
            raise CodecError(f"Transaction hex is not valid hex: {e}") from e
        return decode_transaction(data)

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    @property
    def is_coinbase(self) -> bool:
        return len(self.inputs) == 1 and self.inputs[0].previous_output.is_null

    def serialize(self, include_witness: bool = True) -> bytes:
        """Consensus-encode; with ``include_witness=False`` the legacy (txid) form."""
        key = "full" if include_witness else "base"
        if key not in self._cache:
            self._cache[key] = encode_transaction(self, include_witness=include_witness)
        return self._cache[key]

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    @property
    def wtxid(self) -> str:
        return hash256(self.serialize())[::-1].hex()

    def size(self) -> int:
        """Total serialized size in bytes, witness included."""
        return len(self.serialize())

    def base_size(self) -> int:
        """Serialized size without marker, flag or witness data."""
        return len(self.serialize(include_witness=False))

    def witness_size(self) -> int:
        return self.size() - self.base_size()

    def weight(self) -> int:
        return self.witness_size() + WITNESS_SCALE_FACTOR * self.base_size()

    def vsize(self) -> int:
        return (self.weight() + WITNESS_SCALE_FACTOR - 1) // WITNESS_SCALE_FACTOR

    def output_total(self) -> int:
        return sum(out.value for out in self.outputs)


# =============================================================================
# Encoding
# =============================================================================


def encode_transaction(tx: Transaction, include_witness: bool = True) -> bytes:
    """
    Serialize a transaction.

    The segwit marker/flag are written only when some input carries witness
    data, which is exactly when ``decode_transaction`` accepts them.
    """
    segwit = include_witness and tx.has_witness

    parts = [struct.pack("<i", tx.version)]
    if segwit:
        parts.append(b"\x00\x01")

    parts.append(encode_varint(len(tx.inputs)))
    for inp in tx.inputs:
        parts.append(inp.previous_output.serialize())
        parts.append(encode_varint(len(inp.script_sig)))
        parts.append(inp.script_sig)
        parts.append(struct.pack("<I", inp.sequence))

    parts.append(encode_varint(len(tx.outputs)))
    for out in tx.outputs:
        parts.append(struct.pack("<Q", out.value))
        parts.append(encode_varint(len(out.script_pubkey)))
        parts.append(out.script_pubkey)

    if segwit:
        for inp in tx.inputs:
            parts.append(encode_varint(len(inp.witness)))
            for item in inp.witness:
                parts.append(encode_varint(len(item)))
                parts.append(item)

    parts.append(struct.pack("<I", tx.locktime))
    return b"".join(parts)


# =============================================================================
# Decoding
# =============================================================================


class _Reader:
    """Bounds-checked cursor over a byte string."""

    def __init__(self, data: bytes):
        self._data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def read(self, n: int) -> bytes:
        if n > self.remaining:
            raise CodecError(
                f"Truncated transaction: need {n} bytes at offset {self.offset}, "
                f"only {self.remaining} left"
            )
        chunk = self._data[self.offset : self.offset + n]
        self.offset += n
        return chunk

    def read_uint8(self) -> int:
        return self.read(1)[0]

    def read_int32(self) -> int:
        return struct.unpack("<i", self.read(4))[0]

    def read_uint32(self) -> int:
        return struct.unpack("<I", self.read(4))[0]

    def read_uint64(self) -> int:
        return struct.unpack("<Q", self.read(8))[0]

    def read_varint(self) -> int:
        first = self.read_uint8()
        if first < 0xFD:
            return first
        if first == 0xFD:
            value, minimum = struct.unpack("<H", self.read(2))[0], 0xFD
        elif first == 0xFE:
            value, minimum = struct.unpack("<I", self.read(4))[0], 0x10000
        else:
            value, minimum = struct.unpack("<Q", self.read(8))[0], 0x100000000
        if value < minimum:
            raise CodecError(f"Non-minimal varint encoding at offset {self.offset}")
        return value

    def read_count(self, min_item_size: int, what: str) -> int:
        count = self.read_varint()
        if count * min_item_size > self.remaining:
            raise CodecError(f"{what} count {count} exceeds remaining {self.remaining} bytes")
        return count

    def read_var_bytes(self) -> bytes:
        return self.read(self.read_varint())


def _read_inputs(reader: _Reader) -> list[tuple[OutPoint, bytes, int]]:
    inputs = []
    for _ in range(reader.read_count(_MIN_INPUT_SIZE, "Input")):
        txid = reader.read(32)[::-1].hex()
        vout = reader.read_uint32()
        script_sig = reader.read_var_bytes()
        sequence = reader.read_uint32()
        inputs.append((OutPoint(txid, vout), script_sig, sequence))
    return inputs


def _read_outputs(reader: _Reader) -> tuple[TxOut, ...]:
    outputs = []
    for _ in range(reader.read_count(_MIN_OUTPUT_SIZE, "Output")):
        value = reader.read_uint64()
        script_pubkey = reader.read_var_bytes()
        outputs.append(TxOut(value=value, script_pubkey=script_pubkey))
    return tuple(outputs)


def decode_transaction(data: bytes) -> Transaction:
    """
    Decode a consensus-serialized transaction.

    Args:
        data: Raw transaction bytes

    Returns:
        Decoded Transaction

    Raises:
        CodecError: If the bytes are truncated, malformed, or followed by
            trailing data
    """
    reader = _Reader(data)
    version = reader.read_int32()

    raw_inputs = _read_inputs(reader)
    witnesses: list[tuple[bytes, ...]] = []

    if not raw_inputs:
        # An empty input list is the segwit marker; the next byte is the flag
        flag = reader.read_uint8()
        if flag != 0x01:
            raise CodecError(f"Unsupported segwit flag {flag:#04x}")
        raw_inputs = _read_inputs(reader)
        outputs = _read_outputs(reader)
        for _ in raw_inputs:
            stack_size = reader.read_count(1, "Witness item")
            witnesses.append(tuple(reader.read_var_bytes() for _ in range(stack_size)))
        if not any(witnesses):
            raise CodecError("Segwit flag set but no witness data present")
    else:
        outputs = _read_outputs(reader)
        witnesses = [()] * len(raw_inputs)

    locktime = reader.read_uint32()

    if reader.remaining:
        raise CodecError(f"{reader.remaining} trailing bytes after transaction")

    inputs = tuple(
        TxIn(previous_output=outpoint, script_sig=script_sig, sequence=sequence, witness=witness)
        for (outpoint, script_sig, sequence), witness in zip(raw_inputs, witnesses)
    )
    return Transaction(version=version, inputs=inputs, outputs=outputs, locktime=locktime)
