"""
Tests for the settle.py command-line front end
"""
import json
import logging

import pytest

import settle
from models.validation import SnapshotModel, TransactionModel
from utxo.utxo_set import UnspentOutputSet
from wallet.wallet import load_wallet_file, unlock_wallet
from conftest import mint

PASSWORD = "cli-pw"


@pytest.fixture(autouse=True)
def _plain_logging(monkeypatch):
    """main() reconfigures the root logger; put it back afterwards."""
    monkeypatch.setattr(settle, "LOG_STRUCTURED", False)
    monkeypatch.setattr(settle, "LOG_FILE", None)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def files(tmp_path, seeded, o1, k1, k2, k3):
    tx1 = k1.pay([o1], [(10, k2.pub)])
    tx2 = k2.pay([tx1.output_id(0)], [(10, k3.pub)])
    snapshot = tmp_path / "utxos.json"
    snapshot.write_text(json.dumps(SnapshotModel.from_domain(seeded).model_dump()))
    epoch = tmp_path / "epoch.json"
    epoch.write_text(json.dumps({"transactions": [
        TransactionModel.from_domain(tx2).model_dump(),
        tx1.serialize().hex(),
    ]}))
    return {"snapshot": snapshot, "epoch": epoch, "tx1": tx1, "tx2": tx2}


def test_resolve_json_snapshot(files, tmp_path, capsys):
    out = tmp_path / "next.json"
    code = settle.main(["resolve", "--snapshot", str(files["snapshot"]),
                        "--epoch", str(files["epoch"]), "--out", str(out)])
    assert code == 0

    report = json.loads(capsys.readouterr().out)
    assert report["accepted"] == [files["tx1"].txid_hex, files["tx2"].txid_hex]
    assert report["rejected"] == []

    new_state = SnapshotModel.model_validate(json.loads(out.read_text())).to_domain()
    assert new_state.ids() == [files["tx2"].output_id(0)]


def test_resolve_inline_snapshot(files, capsys):
    assert settle.main(["resolve", "--snapshot", str(files["snapshot"]),
                        "--epoch", str(files["epoch"])]) == 0
    report = json.loads(capsys.readouterr().out)
    assert len(report["snapshot"]["utxos"]) == 1


def test_resolve_against_rocksdb(files, tmp_path, seeded, capsys):
    from database.database import set_db, close_db, store_utxo_set, load_utxo_set

    db_path = str(tmp_path / "ledger.rocksdb")
    store_utxo_set(set_db(db_path), seeded)
    close_db()

    assert settle.main(["resolve", "--db", db_path, "--epoch", str(files["epoch"])]) == 0
    assert len(json.loads(capsys.readouterr().out)["accepted"]) == 2

    try:
        assert load_utxo_set(set_db(db_path)).ids() == [files["tx2"].output_id(0)]
    finally:
        close_db()


def test_resolve_requires_one_source(files):
    assert settle.main(["resolve", "--epoch", str(files["epoch"])]) == 1


def test_resolve_bad_epoch_file(files, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"transactions": [{"inputs": [{"txid": "00", "index": 0}]}]}))
    assert settle.main(["resolve", "--snapshot", str(files["snapshot"]), "--epoch", str(bad)]) == 1
    assert settle.main(["resolve", "--snapshot", str(tmp_path / "missing.json"),
                        "--epoch", str(files["epoch"])]) == 1


def test_keygen_and_sign(tmp_path, capsys):
    wfile = tmp_path / "alice.json"
    assert settle.main(["keygen", "--wallet", str(wfile), "--password", PASSWORD]) == 0
    printed = capsys.readouterr().out
    plain = unlock_wallet(load_wallet_file(str(wfile)), PASSWORD)
    assert plain["publicKey"] in printed

    owner = bytes.fromhex(plain["publicKey"])
    g = mint((5, owner))
    unsigned = tmp_path / "unsigned.json"
    unsigned.write_text(json.dumps({
        "inputs": [{"txid": g.txid_hex, "index": 0}],
        "outputs": [{"value": "5", "owner": plain["publicKey"]}],
    }))
    signed_path = tmp_path / "signed.json"
    assert settle.main(["sign", "--wallet", str(wfile), "--password", PASSWORD,
                        "--tx", str(unsigned), "--out", str(signed_path)]) == 0

    signed = json.loads(signed_path.read_text())
    tx = TransactionModel.model_validate(signed).to_domain()
    assert signed["txid"] == tx.txid_hex

    from blockchain.ledger_validator import LedgerValidator
    lv = LedgerValidator(UnspentOutputSet(dict(g.created_outputs())))
    assert lv.is_valid(tx)


def test_sign_with_wrong_password(tmp_path):
    wfile = tmp_path / "bob.json"
    assert settle.main(["keygen", "--wallet", str(wfile), "--password", PASSWORD]) == 0
    tx_file = tmp_path / "tx.json"
    tx_file.write_text(json.dumps({"inputs": [], "outputs": []}))
    assert settle.main(["sign", "--wallet", str(wfile), "--password", "nope",
                        "--tx", str(tx_file)]) == 1
