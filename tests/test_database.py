"""
Tests for the RocksDB snapshot store in database.database
"""
import json

import pytest

from blockchain.transaction import OutputId, TxOutput
from database.database import (
    set_db, get_db, close_db, store_utxo_set, load_utxo_set, utxo_db_key,
)
from errors.exceptions import DatabaseError
from utxo.utxo_set import UnspentOutputSet

OWNER = b"\x11" * 32


def oid(n: int, index: int = 0) -> OutputId:
    return OutputId(bytes([n]) * 32, index)


@pytest.fixture
def setup_db(tmp_path):
    """Setup test database"""
    db = set_db(str(tmp_path / "test_ledger.rocksdb"))
    yield db
    close_db()


def test_store_and_load_with_rocksdb(setup_db):
    utxos = UnspentOutputSet({oid(1): TxOutput("1.5", OWNER), oid(2, 3): TxOutput(7, OWNER)})
    assert store_utxo_set(setup_db, utxos) == 2
    assert get_db() is setup_db
    assert load_utxo_set(setup_db) == utxos


def test_store_removes_spent_entries():
    store = {b"other:key": b"kept"}
    store_utxo_set(store, UnspentOutputSet({oid(1): TxOutput(1, OWNER), oid(2): TxOutput(2, OWNER)}))
    store_utxo_set(store, UnspentOutputSet({oid(2): TxOutput(2, OWNER)}))

    assert utxo_db_key(oid(1)) not in store
    assert json.loads(store[utxo_db_key(oid(2))]) == {"value": "2.00000000", "owner": OWNER.hex()}
    assert store[b"other:key"] == b"kept"
    assert load_utxo_set(store).ids() == [oid(2)]


def test_load_rejects_corrupt_entries():
    store = {utxo_db_key(oid(1)): b"{not json"}
    with pytest.raises(DatabaseError):
        load_utxo_set(store)
    store = {b"utxo:zz:0": json.dumps({"value": "1", "owner": OWNER.hex()}).encode()}
    with pytest.raises(DatabaseError):
        load_utxo_set(store)


def test_get_db_before_init():
    close_db()
    with pytest.raises(RuntimeError):
        get_db()
