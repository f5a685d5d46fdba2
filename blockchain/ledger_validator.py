"""
Epoch settlement over a privately owned unspent-output set.

``LedgerValidator.resolve_epoch`` takes an unordered batch of proposed
transactions and accepts the maximal subset that can be applied together:

1. Any output claimed by two different proposals excludes every claimant
   for the rest of the epoch. The same txid proposed twice counts as such
   a conflict.
2. The remaining candidates are scanned repeatedly against the ledger as
   it stands; each valid one is applied immediately. Scanning stops after
   a full pass with no acceptances.

Acceptance only ever adds spendable outputs for the remaining candidates
(none of them claim what an accepted transaction consumed), so the
accepted set does not depend on the order of the batch.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from blockchain.transaction import OutputId, Transaction
from blockchain.transaction_validator import TransactionValidator, Verifier
from errors.exceptions import InvalidArgumentError
from utxo.utxo_set import UnspentOutputSet

logger = logging.getLogger(__name__)


@dataclass
class EpochReport:
    """Outcome of one resolve_epoch call, by txid hex"""
    epoch: int
    accepted: List[str] = field(default_factory=list)
    conflicting: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    rounds: int = 0

    def to_dict(self) -> dict:
        return {
            "epoch": self.epoch,
            "accepted": list(self.accepted),
            "conflicting": list(self.conflicting),
            "rejected": list(self.rejected),
            "rounds": self.rounds,
        }


class LedgerValidator:
    def __init__(self, utxo_set: UnspentOutputSet, verify: Optional[Verifier] = None):
        """
        Args:
            utxo_set: Seed ledger state. It is copied; the caller's set is never
                touched again.
            verify: Signature check ``verify(owner, message, signature)``;
                defaults to Ed25519 verification.
        """
        if not isinstance(utxo_set, UnspentOutputSet):
            raise InvalidArgumentError(f"Expected UnspentOutputSet, got {type(utxo_set).__name__}")
        self._utxo_set = utxo_set.copy()
        self._validator = TransactionValidator(verify)
        self._epoch = 0
        self.last_epoch: Optional[EpochReport] = None

    @property
    def epoch(self) -> int:
        """Number of epochs resolved so far"""
        return self._epoch

    def utxo_snapshot(self) -> UnspentOutputSet:
        """Point-in-time copy of the ledger state"""
        return self._utxo_set.copy()

    def is_valid(self, tx: Transaction) -> bool:
        """Validate ``tx`` against the current ledger state without changing it"""
        return self._validator.is_valid(tx, self._utxo_set)

    def resolve_epoch(self, proposed_txs: Iterable) -> List[Transaction]:
        """
        Accept the maximal mutually consistent subset of ``proposed_txs``.

        Returns the accepted transactions in acceptance order and leaves the
        ledger state updated with exactly their effects.
        """
        candidates = self._check_batch(proposed_txs)
        self._epoch += 1
        report = EpochReport(epoch=self._epoch)

        excluded = self._find_conflicts(candidates)
        report.conflicting = [candidates[i].txid_hex for i in sorted(excluded)]

        pending = [i for i in range(len(candidates)) if i not in excluded]
        accepted: List[Transaction] = []
        progress = True
        while pending and progress:
            progress = False
            report.rounds += 1
            still_pending = []
            for i in pending:
                tx = candidates[i]
                if self.is_valid(tx):
                    self._apply(tx)
                    accepted.append(tx)
                    report.accepted.append(tx.txid_hex)
                    progress = True
                else:
                    still_pending.append(i)
            pending = still_pending

        report.rejected = [candidates[i].txid_hex for i in pending]
        self.last_epoch = report
        logger.info(
            f"Epoch {report.epoch} resolved: {len(report.accepted)} accepted, "
            f"{len(report.conflicting)} conflicting, {len(report.rejected)} rejected "
            f"in {report.rounds} rounds",
            extra={"epoch": report.epoch},
        )
        return accepted

    @staticmethod
    def _check_batch(proposed_txs) -> List[Transaction]:
        if proposed_txs is None or isinstance(proposed_txs, (str, bytes)) or not isinstance(proposed_txs, Iterable):
            raise InvalidArgumentError("resolve_epoch expects an iterable of transactions")
        candidates = list(proposed_txs)
        for position, tx in enumerate(candidates):
            if not isinstance(tx, Transaction):
                raise InvalidArgumentError(
                    f"Proposed transaction at position {position} is {type(tx).__name__}, not Transaction")
        return candidates

    @staticmethod
    def _find_conflicts(candidates: List[Transaction]) -> Set[int]:
        """Indices of every candidate that shares a claimed output or txid with another"""
        claimed_by: Dict[OutputId, int] = {}
        seen_txids: Dict[bytes, int] = {}
        excluded: Set[int] = set()

        for i, tx in enumerate(candidates):
            first = seen_txids.setdefault(tx.txid, i)
            # a repeated txid creates the same outputs twice; excluding all copies keeps outputs present iff created and unspent
            if first != i:
                excluded.update((first, i))
            for inp in tx.inputs:
                claimant = claimed_by.setdefault(inp.outpoint, i)
                if claimant != i:
                    logger.debug(
                        f"Double spend of UTXO {inp.outpoint.key} between "
                        f"{candidates[claimant].txid_hex} and {tx.txid_hex}",
                        extra={"utxo_key": inp.outpoint.key},
                    )
                    excluded.update((claimant, i))
        return excluded

    def _apply(self, tx: Transaction):
        for inp in tx.inputs:
            self._utxo_set.remove(inp.outpoint)
        for utxo_id, output in tx.created_outputs():
            self._utxo_set.insert(utxo_id, output)
        logger.debug(f"Applied transaction {tx.txid_hex}", extra={"tx_id": tx.txid_hex})
