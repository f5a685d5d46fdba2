"""
Transaction data model for the settlement ledger.

Outputs are addressed by ``OutputId`` (source txid + position). Transactions
are immutable: signing produces a new object. The canonical byte encoding is
Bitcoin-like (varint counts, little-endian integers) and the transaction id
is the double SHA-256 of that encoding.
"""

import hashlib
import struct
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from functools import cached_property
from typing import Tuple, Union

from config.config import VALUE_DECIMALS, MAX_VALUE_UNITS
from errors.exceptions import InvalidArgumentError, ValidationError

TXID_SIZE = 32

ValueLike = Union[Decimal, int, str, float]


def sha256d(b: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(b).digest()).digest()


def write_varint(n: int) -> bytes:
    if n < 0xfd:
        return bytes([n])
    elif n <= 0xffff:
        return b'\xfd' + struct.pack('<H', n)
    elif n <= 0xffffffff:
        return b'\xfe' + struct.pack('<I', n)
    return b'\xff' + struct.pack('<Q', n)


def read_varint(raw: bytes, offset: int) -> Tuple[int, int]:
    i = raw[offset]
    if i < 0xfd:
        return i, 1
    elif i == 0xfd:
        return struct.unpack_from('<H', raw, offset + 1)[0], 3
    elif i == 0xfe:
        return struct.unpack_from('<I', raw, offset + 1)[0], 5
    else:
        return struct.unpack_from('<Q', raw, offset + 1)[0], 9


def to_base_units(value: Decimal) -> int:
    """
    Exact conversion of a value to an integer count of VALUE_QUANTUM.

    Works on the digit tuple so no Decimal context rounding is involved.
    """
    sign, digits, exponent = value.as_tuple()
    if not isinstance(exponent, int):
        raise InvalidArgumentError(f"Value {value} is not finite")
    coefficient = int("".join(map(str, digits)) or "0")
    if coefficient == 0:
        return 0
    shift = exponent + VALUE_DECIMALS
    if value.adjusted() + VALUE_DECIMALS > len(str(MAX_VALUE_UNITS)):
        raise InvalidArgumentError(f"Value {value} is out of range")
    if shift >= 0:
        units = coefficient * 10 ** shift
    else:
        # a non-zero coefficient shorter than the shift cannot divide evenly
        if -shift > len(digits):
            raise InvalidArgumentError(
                f"Value {value} has more than {VALUE_DECIMALS} decimal places")
        units, remainder = divmod(coefficient, 10 ** -shift)
        if remainder:
            raise InvalidArgumentError(
                f"Value {value} has more than {VALUE_DECIMALS} decimal places")
    if units > MAX_VALUE_UNITS:
        raise InvalidArgumentError(f"Value {value} is out of range")
    return -units if sign else units


def from_base_units(units: int) -> Decimal:
    return Decimal(units).scaleb(-VALUE_DECIMALS)


def coerce_value(value: ValueLike) -> Decimal:
    if isinstance(value, bool):
        raise InvalidArgumentError("Output value must be numeric, got bool")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid output value: {value!r}")
    if not amount.is_finite():
        raise InvalidArgumentError(f"Output value must be finite, got {value!r}")
    return from_base_units(to_base_units(amount))


def _require_bytes(value, name: str) -> bytes:
    if isinstance(value, bytearray):
        return bytes(value)
    if not isinstance(value, bytes):
        raise InvalidArgumentError(f"{name} must be bytes, got {type(value).__name__}")
    return value


def _require_index(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0 or value > 0xffffffff:
        raise InvalidArgumentError(f"{name} must be a 32-bit non-negative integer, got {value!r}")
    return value


def _require_txid(value, name: str) -> bytes:
    value = _require_bytes(value, name)
    if len(value) != TXID_SIZE:
        raise InvalidArgumentError(f"{name} must be {TXID_SIZE} bytes, got {len(value)}")
    return value


@dataclass(frozen=True)
class OutputId:
    """Address of a transaction output: (source txid, output position)."""
    txid: bytes
    index: int

    def __post_init__(self):
        object.__setattr__(self, "txid", _require_txid(self.txid, "txid"))
        _require_index(self.index, "index")

    @property
    def key(self) -> str:
        return f"{self.txid.hex()}:{self.index}"

    @classmethod
    def from_key(cls, key: str) -> 'OutputId':
        txid_hex, _, index = key.rpartition(":")
        try:
            return cls(bytes.fromhex(txid_hex), int(index))
        except ValueError:
            raise InvalidArgumentError(f"Malformed UTXO key: {key!r}")

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class TxOutput:
    value: Decimal
    owner: bytes

    def __post_init__(self):
        object.__setattr__(self, "value", coerce_value(self.value))
        object.__setattr__(self, "owner", _require_bytes(self.owner, "owner"))

    def serialize(self) -> bytes:
        return (struct.pack('<q', to_base_units(self.value)) +
                write_varint(len(self.owner)) + self.owner)


@dataclass(frozen=True)
class TxInput:
    prev_txid: bytes
    output_index: int
    signature: bytes = b""

    def __post_init__(self):
        object.__setattr__(self, "prev_txid", _require_txid(self.prev_txid, "prev_txid"))
        _require_index(self.output_index, "output_index")
        object.__setattr__(self, "signature", _require_bytes(self.signature, "signature"))

    @property
    def outpoint(self) -> OutputId:
        return OutputId(self.prev_txid, self.output_index)

    def serialize_outpoint(self) -> bytes:
        return self.prev_txid + struct.pack('<I', self.output_index)


@dataclass(frozen=True)
class Transaction:
    inputs: Tuple[TxInput, ...] = ()
    outputs: Tuple[TxOutput, ...] = ()

    def __post_init__(self):
        inputs = tuple(self.inputs)
        outputs = tuple(self.outputs)
        for inp in inputs:
            if not isinstance(inp, TxInput):
                raise InvalidArgumentError(f"Expected TxInput, got {type(inp).__name__}")
        for out in outputs:
            if not isinstance(out, TxOutput):
                raise InvalidArgumentError(f"Expected TxOutput, got {type(out).__name__}")
        object.__setattr__(self, "inputs", inputs)
        object.__setattr__(self, "outputs", outputs)

    def serialize(self) -> bytes:
        parts = [write_varint(len(self.inputs))]
        for inp in self.inputs:
            parts.append(inp.serialize_outpoint())
            parts.append(write_varint(len(inp.signature)))
            parts.append(inp.signature)
        parts.append(write_varint(len(self.outputs)))
        parts.extend(out.serialize() for out in self.outputs)
        return b"".join(parts)

    @cached_property
    def txid(self) -> bytes:
        return sha256d(self.serialize())

    @property
    def txid_hex(self) -> str:
        return self.txid.hex()

    def output_id(self, index: int) -> OutputId:
        if not 0 <= index < len(self.outputs):
            raise InvalidArgumentError(f"Output index {index} out of range")
        return OutputId(self.txid, index)

    def created_outputs(self):
        """(OutputId, TxOutput) pairs this transaction adds when accepted."""
        return [(OutputId(self.txid, i), out) for i, out in enumerate(self.outputs)]

    def with_signature(self, index: int, signature: bytes) -> 'Transaction':
        if not 0 <= index < len(self.inputs):
            raise InvalidArgumentError(f"Input index {index} out of range")
        inputs = list(self.inputs)
        inputs[index] = replace(inputs[index], signature=signature)
        return Transaction(inputs=tuple(inputs), outputs=self.outputs)


def signing_payload(tx: Transaction, index: int) -> bytes:
    """
    Bytes signed by the owner of the output claimed by input ``index``.

    Covers that input's outpoint and every output, and no signature, so
    signing one input never invalidates another.
    """
    if not isinstance(tx, Transaction):
        raise InvalidArgumentError(f"Expected Transaction, got {type(tx).__name__}")
    if not 0 <= index < len(tx.inputs):
        raise InvalidArgumentError(f"Input index {index} out of range")
    parts = [tx.inputs[index].serialize_outpoint()]
    parts.extend(out.serialize() for out in tx.outputs)
    return b"".join(parts)


def parse_transaction(raw: bytes) -> Transaction:
    """Decode the canonical encoding produced by ``Transaction.serialize``."""
    try:
        offset = 0
        vin_cnt, sz = read_varint(raw, offset)
        offset += sz
        inputs = []
        for _ in range(vin_cnt):
            prev_txid = raw[offset:offset + TXID_SIZE]
            offset += TXID_SIZE
            prev_index = struct.unpack_from('<I', raw, offset)[0]
            offset += 4
            sig_len, sz = read_varint(raw, offset)
            offset += sz
            signature = raw[offset:offset + sig_len]
            if len(signature) != sig_len:
                raise ValidationError("Truncated input signature")
            offset += sig_len
            inputs.append(TxInput(prev_txid, prev_index, signature))
        vout_cnt, sz = read_varint(raw, offset)
        offset += sz
        outputs = []
        for _ in range(vout_cnt):
            units = struct.unpack_from('<q', raw, offset)[0]
            offset += 8
            owner_len, sz = read_varint(raw, offset)
            offset += sz
            owner = raw[offset:offset + owner_len]
            if len(owner) != owner_len:
                raise ValidationError("Truncated output owner")
            offset += owner_len
            outputs.append(TxOutput(from_base_units(units), owner))
    except (IndexError, struct.error, InvalidArgumentError) as e:
        raise ValidationError(f"Failed to parse transaction: {e}")
    if offset != len(raw):
        raise ValidationError(f"Trailing bytes after transaction: {len(raw) - offset}")
    return Transaction(inputs=tuple(inputs), outputs=tuple(outputs))
