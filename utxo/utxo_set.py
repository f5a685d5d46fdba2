import logging
from decimal import Decimal
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from blockchain.transaction import OutputId, TxOutput, from_base_units, to_base_units
from errors.exceptions import InvalidArgumentError, UTXONotFoundError

logger = logging.getLogger(__name__)


class UnspentOutputSet:
    """
    Mapping from OutputId to TxOutput.

    Pure storage: no validation beyond argument types and no locking. Both key
    and value types are immutable, so copying the underlying dict yields an
    independent set.
    """

    def __init__(self, entries: Optional[Union['UnspentOutputSet', Mapping[OutputId, TxOutput]]] = None):
        self._utxos: Dict[OutputId, TxOutput] = {}
        if entries is None:
            return
        if isinstance(entries, UnspentOutputSet):
            self._utxos = dict(entries._utxos)
            return
        if not isinstance(entries, Mapping):
            raise InvalidArgumentError(
                f"UnspentOutputSet expects a mapping or UnspentOutputSet, got {type(entries).__name__}")
        for utxo_id, output in entries.items():
            self.insert(utxo_id, output)

    @staticmethod
    def _check_id(utxo_id) -> OutputId:
        if not isinstance(utxo_id, OutputId):
            raise InvalidArgumentError(f"Expected OutputId, got {type(utxo_id).__name__}")
        return utxo_id

    def contains(self, utxo_id: OutputId) -> bool:
        return self._check_id(utxo_id) in self._utxos

    def __contains__(self, utxo_id) -> bool:
        return isinstance(utxo_id, OutputId) and utxo_id in self._utxos

    def get(self, utxo_id: OutputId) -> TxOutput:
        try:
            return self._utxos[self._check_id(utxo_id)]
        except KeyError:
            raise UTXONotFoundError(utxo_id.key) from None

    def insert(self, utxo_id: OutputId, output: TxOutput):
        """Add ``output`` under ``utxo_id``, overwriting any existing entry."""
        self._check_id(utxo_id)
        if not isinstance(output, TxOutput):
            raise InvalidArgumentError(f"Expected TxOutput, got {type(output).__name__}")
        if utxo_id in self._utxos:
            logger.warning(f"Overwriting existing UTXO {utxo_id.key}")
        self._utxos[utxo_id] = output

    def remove(self, utxo_id: OutputId) -> TxOutput:
        try:
            return self._utxos.pop(self._check_id(utxo_id))
        except KeyError:
            raise UTXONotFoundError(utxo_id.key) from None

    def all_entries(self) -> List[Tuple[OutputId, TxOutput]]:
        return list(self._utxos.items())

    def ids(self) -> List[OutputId]:
        return list(self._utxos)

    def copy(self) -> 'UnspentOutputSet':
        return UnspentOutputSet(self)

    def balance_of(self, owner: bytes) -> Decimal:
        """Sum of unspent values owned by ``owner``."""
        return from_base_units(sum(to_base_units(out.value) for out in self._utxos.values() if out.owner == owner))

    def total_value(self) -> Decimal:
        return from_base_units(sum(to_base_units(out.value) for out in self._utxos.values()))

    def __len__(self) -> int:
        return len(self._utxos)

    def __iter__(self) -> Iterator[OutputId]:
        return iter(list(self._utxos))

    def __eq__(self, other) -> bool:
        if not isinstance(other, UnspentOutputSet):
            return NotImplemented
        return self._utxos == other._utxos

    def __repr__(self) -> str:
        return f"UnspentOutputSet({len(self._utxos)} entries)"
