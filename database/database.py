"""
RocksDB-backed storage for UTXO snapshots.

The settlement core keeps its state in memory; this module only persists and
restores snapshots for the command-line front end. Each UTXO is stored under
``utxo:<txid hex>:<index>`` with a JSON body. Helpers take the store as an
argument, so any mapping with bytes keys (a plain dict in tests) works.
"""

import json
import logging

import rocksdict

from blockchain.transaction import OutputId, TxOutput
from config.config import UTXO_KEY_PREFIX
from errors.exceptions import DatabaseError, InvalidArgumentError
from utxo.utxo_set import UnspentOutputSet

logger = logging.getLogger(__name__)

db = None


def set_db(db_path):
    global db
    if db is None:
        try:
            db = rocksdict.Rdict(db_path)
            logger.info(f"Database initialized at {db_path}")
        except Exception as e:
            logger.error(f"Failed to initialize RocksDB at {db_path}: {e}")
            raise DatabaseError(f"Failed to open {db_path}: {e}") from e
    else:
        logger.info(f"Database already initialized at {db_path}")
    return db


def get_db():
    if db is None:
        raise RuntimeError("Database not initialized yet")
    return db


def close_db():
    global db
    if db is not None:
        db.close()
        logger.info("Database closed")
        db = None


def utxo_db_key(utxo_id: OutputId) -> bytes:
    return UTXO_KEY_PREFIX + utxo_id.key.encode()


def _utxo_keys(store):
    return [key for key in store.keys()
            if isinstance(key, bytes) and key.startswith(UTXO_KEY_PREFIX)]


def store_utxo_set(store, utxo_set: UnspentOutputSet) -> int:
    """Replace every stored UTXO with the contents of ``utxo_set``."""
    wanted = {utxo_db_key(utxo_id): output for utxo_id, output in utxo_set.all_entries()}
    stale = [key for key in _utxo_keys(store) if key not in wanted]
    for key in stale:
        del store[key]
    for key, output in wanted.items():
        store[key] = json.dumps({
            "value": str(output.value),
            "owner": output.owner.hex(),
        }).encode()
    logger.info(f"Stored {len(wanted)} UTXOs, removed {len(stale)} spent entries")
    return len(wanted)


def load_utxo_set(store) -> UnspentOutputSet:
    utxo_set = UnspentOutputSet()
    for key in _utxo_keys(store):
        try:
            utxo_id = OutputId.from_key(key[len(UTXO_KEY_PREFIX):].decode())
            body = json.loads(store[key].decode())
            output = TxOutput(body["value"], bytes.fromhex(body["owner"]))
        except (InvalidArgumentError, ValueError, KeyError) as e:
            raise DatabaseError(f"Corrupt UTXO entry {key!r}: {e}") from e
        utxo_set.insert(utxo_id, output)
    logger.info(f"Loaded {len(utxo_set)} UTXOs")
    return utxo_set
