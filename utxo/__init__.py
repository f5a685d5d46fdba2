from .utxo_set import UnspentOutputSet

__all__ = ["UnspentOutputSet"]
