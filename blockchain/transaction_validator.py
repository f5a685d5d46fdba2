"""
Transaction validation against a point-in-time unspent-output set.

Validation is a pure predicate: it reads the UTXO set and never mutates it.
A failed check is a routine outcome reported as ``(False, reason)``; only
malformed arguments raise.
"""

import logging
from decimal import Decimal
from typing import Callable, Optional, Tuple

from blockchain.transaction import Transaction, from_base_units, signing_payload, to_base_units
from errors.exceptions import InvalidArgumentError
from utxo.utxo_set import UnspentOutputSet
from wallet.wallet import verify_signature

logger = logging.getLogger(__name__)

# verify(owner_key, message, signature) -> bool
Verifier = Callable[[bytes, bytes, bytes], bool]


def _check_arguments(tx, utxo_set):
    if not isinstance(tx, Transaction):
        raise InvalidArgumentError(f"Expected Transaction, got {type(tx).__name__}")
    if not isinstance(utxo_set, UnspentOutputSet):
        raise InvalidArgumentError(f"Expected UnspentOutputSet, got {type(utxo_set).__name__}")


def check_transaction(tx: Transaction, utxo_set: UnspentOutputSet,
                      verify: Optional[Verifier] = None) -> Tuple[bool, Optional[str]]:
    """
    Run the five validity checks in order, stopping at the first failure.
    Returns (is_valid, error_message)
    """
    _check_arguments(tx, utxo_set)
    verify = verify or verify_signature
    txid = tx.txid_hex

    # 1. every claimed output is currently unspent
    for inp in tx.inputs:
        if inp.outpoint not in utxo_set:
            return False, f"Transaction {txid} references non-existent UTXO {inp.outpoint.key}"

    # 2. each claimed output satisfies at most one input
    available = set(inp.outpoint for inp in tx.inputs)
    for inp in tx.inputs:
        if inp.outpoint not in available:
            return False, f"Transaction {txid} claims UTXO {inp.outpoint.key} more than once"
        available.discard(inp.outpoint)

    # 3. each input is signed by the owner of the output it claims
    # sums are kept in integer base units so the comparison is exact
    units_in = 0
    for i, inp in enumerate(tx.inputs):
        prev_output = utxo_set.get(inp.outpoint)
        if not verify(prev_output.owner, signing_payload(tx, i), inp.signature):
            return False, f"Signature verification failed for input {i} of tx {txid}"
        units_in += to_base_units(prev_output.value)

    # 4. no negative outputs
    units_out = 0
    for i, out in enumerate(tx.outputs):
        if out.value < 0:
            return False, f"Output {i} of tx {txid} has negative value {out.value}"
        units_out += to_base_units(out.value)

    # 5. value conservation; the surplus is an implicit fee
    if units_in < units_out:
        return False, (f"Insufficient input value in tx {txid}: inputs "
                       f"{from_base_units(units_in)} < outputs {from_base_units(units_out)}")

    return True, None


class TransactionValidator:
    """Validates transactions against a UTXO set it is handed per call"""

    def __init__(self, verify: Optional[Verifier] = None):
        self.verify = verify or verify_signature

    def check(self, tx: Transaction, utxo_set: UnspentOutputSet) -> Tuple[bool, Optional[str]]:
        return check_transaction(tx, utxo_set, self.verify)

    def is_valid(self, tx: Transaction, utxo_set: UnspentOutputSet) -> bool:
        is_valid, error = self.check(tx, utxo_set)
        if not is_valid:
            logger.debug(error, extra={"tx_id": tx.txid_hex})
        return is_valid

    def fee(self, tx: Transaction, utxo_set: UnspentOutputSet) -> Decimal:
        """
        Implicit fee of a transaction that is valid against ``utxo_set``.
        Raises InvalidArgumentError for an invalid transaction.
        """
        is_valid, error = self.check(tx, utxo_set)
        if not is_valid:
            raise InvalidArgumentError(error)
        units_in = sum(to_base_units(utxo_set.get(inp.outpoint).value) for inp in tx.inputs)
        units_out = sum(to_base_units(out.value) for out in tx.outputs)
        return from_base_units(units_in - units_out)
