"""
Pydantic models for JSON snapshot and epoch files
"""

from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field, field_validator

from blockchain.transaction import (
    OutputId, Transaction, TxInput, TxOutput, TXID_SIZE, coerce_value, parse_transaction,
)
from errors.exceptions import InvalidArgumentError, ValidationError
from utxo.utxo_set import UnspentOutputSet


def _validate_hex(v: str, size: int = None) -> str:
    try:
        raw = bytes.fromhex(v)
    except ValueError:
        raise ValueError('Must be a hexadecimal string')
    if size is not None and len(raw) != size:
        raise ValueError(f'Must encode exactly {size} bytes')
    return v.lower()


def _validate_amount(v) -> str:
    try:
        return str(coerce_value(v))
    except InvalidArgumentError as e:
        raise ValueError(e.message)


class OutputModel(BaseModel):
    value: str = Field(..., description="Decimal amount")
    owner: str = Field(..., description="Hex encoded raw public key of the owner")

    @field_validator('value', mode='before')
    @classmethod
    def validate_value(cls, v):
        return _validate_amount(v)

    @field_validator('owner')
    @classmethod
    def validate_owner(cls, v):
        return _validate_hex(v)

    def to_domain(self) -> TxOutput:
        return TxOutput(Decimal(self.value), bytes.fromhex(self.owner))

    @classmethod
    def from_domain(cls, output: TxOutput) -> 'OutputModel':
        return cls(value=str(output.value), owner=output.owner.hex())


class OutputIdModel(BaseModel):
    txid: str = Field(..., description="Hex txid of the transaction that created the output")
    index: int = Field(..., ge=0, le=0xffffffff)

    @field_validator('txid')
    @classmethod
    def validate_txid(cls, v):
        return _validate_hex(v, TXID_SIZE)

    def output_id(self) -> OutputId:
        return OutputId(bytes.fromhex(self.txid), self.index)


class InputModel(OutputIdModel):
    signature: str = Field("", description="Hex encoded signature")

    @field_validator('signature')
    @classmethod
    def validate_signature(cls, v):
        return _validate_hex(v)

    def to_domain(self) -> TxInput:
        return TxInput(bytes.fromhex(self.txid), self.index, bytes.fromhex(self.signature))

    @classmethod
    def from_domain(cls, inp: TxInput) -> 'InputModel':
        return cls(txid=inp.prev_txid.hex(), index=inp.output_index, signature=inp.signature.hex())


class TransactionModel(BaseModel):
    inputs: List[InputModel] = Field(default_factory=list)
    outputs: List[OutputModel] = Field(default_factory=list)

    def to_domain(self) -> Transaction:
        return Transaction(
            inputs=tuple(inp.to_domain() for inp in self.inputs),
            outputs=tuple(out.to_domain() for out in self.outputs),
        )

    @classmethod
    def from_domain(cls, tx: Transaction) -> 'TransactionModel':
        return cls(
            inputs=[InputModel.from_domain(inp) for inp in tx.inputs],
            outputs=[OutputModel.from_domain(out) for out in tx.outputs],
        )

    @classmethod
    def from_raw_hex(cls, raw_hex: str) -> 'TransactionModel':
        try:
            raw = bytes.fromhex(raw_hex)
        except ValueError:
            raise ValueError('Raw transaction must be hexadecimal')
        try:
            return cls.from_domain(parse_transaction(raw))
        except ValidationError as e:
            raise ValueError(e.message)


class UTXOEntryModel(OutputIdModel, OutputModel):
    pass


class SnapshotModel(BaseModel):
    utxos: List[UTXOEntryModel] = Field(default_factory=list)

    @field_validator('utxos')
    @classmethod
    def validate_unique(cls, v):
        keys = [(entry.txid, entry.index) for entry in v]
        if len(keys) != len(set(keys)):
            raise ValueError('Snapshot lists the same UTXO more than once')
        return v

    def to_domain(self) -> UnspentOutputSet:
        return UnspentOutputSet({entry.output_id(): entry.to_domain() for entry in self.utxos})

    @classmethod
    def from_domain(cls, utxo_set: UnspentOutputSet) -> 'SnapshotModel':
        entries = sorted(utxo_set.all_entries(), key=lambda item: (item[0].txid, item[0].index))
        return cls(utxos=[
            UTXOEntryModel(txid=utxo_id.txid.hex(), index=utxo_id.index,
                           value=str(output.value), owner=output.owner.hex())
            for utxo_id, output in entries
        ])


class EpochModel(BaseModel):
    transactions: List[TransactionModel] = Field(default_factory=list)

    @field_validator('transactions', mode='before')
    @classmethod
    def decode_raw_transactions(cls, v):
        """Entries may be given as objects or as raw hex encodings"""
        if not isinstance(v, list):
            return v
        return [TransactionModel.from_raw_hex(item) if isinstance(item, str) else item for item in v]

    def to_domain(self) -> List[Transaction]:
        return [tx.to_domain() for tx in self.transactions]
