#!/usr/bin/env python3
"""settle.py

Command-line front end for the settlement ledger.

Usage examples
--------------
```bash
# create (or unlock) a wallet and print its public key
python settle.py keygen --wallet alice.json --password hunter2

# sign every input of an unsigned transaction with one wallet
python settle.py sign --wallet alice.json --password hunter2 \
  --tx unsigned.json --out signed.json

# resolve an epoch against a JSON snapshot and write the new snapshot
python settle.py resolve --snapshot utxos.json --epoch epoch.json --out utxos.next.json

# same, but read and write the snapshot in RocksDB
python settle.py resolve --db ledger.rocksdb --epoch epoch.json
```"""
from __future__ import annotations

import argparse
import json
import sys

from pydantic import ValidationError as ModelValidationError

from blockchain.ledger_validator import LedgerValidator
from config.config import LOG_LEVEL, LOG_FILE, LOG_STRUCTURED, WALLET_FILENAME
from database.database import set_db, close_db, load_utxo_set, store_utxo_set
from errors.exceptions import LedgerError
from log_utils import setup_logging, log_performance, get_logger
from models.validation import EpochModel, SnapshotModel, TransactionModel
from utxo.utxo_set import UnspentOutputSet
from wallet.wallet import get_or_create_wallet, sign_all_inputs

logger = get_logger("settle")


def _read_json(path: str) -> dict:
    with open(path) as f:
        return json.load(f)


def _write_json(data: dict, path: str | None):
    text = json.dumps(data, indent=2)
    if path:
        with open(path, "w") as f:
            f.write(text + "\n")
    else:
        print(text)


def cmd_keygen(args) -> int:
    w = get_or_create_wallet(fname=args.wallet, password=args.password)
    print("Address   :", w["address"])
    print("Public key:", w["publicKey"])
    return 0


def cmd_sign(args) -> int:
    w = get_or_create_wallet(fname=args.wallet, password=args.password)
    tx = TransactionModel.model_validate(_read_json(args.tx)).to_domain()
    signed = sign_all_inputs(tx, w["privateKey"])
    out = TransactionModel.from_domain(signed).model_dump()
    out["txid"] = signed.txid_hex
    _write_json(out, args.out)
    logger.info(f"Signed {len(signed.inputs)} inputs", extra={"tx_id": signed.txid_hex})
    return 0


@log_performance(logger, "resolve_epoch")
def _resolve(utxo_set: UnspentOutputSet, epoch: EpochModel):
    validator = LedgerValidator(utxo_set)
    validator.resolve_epoch(epoch.to_domain())
    return validator.last_epoch, validator.utxo_snapshot()


def cmd_resolve(args) -> int:
    if bool(args.snapshot) == bool(args.db):
        logger.error("Exactly one of --snapshot or --db is required")
        return 1

    if args.db:
        store = set_db(args.db)
        utxo_set = load_utxo_set(store)
    else:
        utxo_set = SnapshotModel.model_validate(_read_json(args.snapshot)).to_domain()

    epoch = EpochModel.model_validate(_read_json(args.epoch))
    try:
        report, new_state = _resolve(utxo_set, epoch)
        if args.db:
            store_utxo_set(store, new_state)
    finally:
        if args.db:
            close_db()

    result = report.to_dict()
    if args.snapshot:
        snapshot = SnapshotModel.from_domain(new_state).model_dump()
        if args.out:
            _write_json(snapshot, args.out)
        else:
            result["snapshot"] = snapshot
    _write_json(result, None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Settlement ledger tools")
    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", help="Create or unlock a wallet")
    keygen.add_argument("--wallet", default=WALLET_FILENAME, help="Wallet file (default: %(default)s)")
    keygen.add_argument("--password", default=None, help="Wallet password (prompted if omitted)")
    keygen.set_defaults(func=cmd_keygen)

    sign = sub.add_parser("sign", help="Sign all inputs of a transaction")
    sign.add_argument("--wallet", default=WALLET_FILENAME, help="Wallet file (default: %(default)s)")
    sign.add_argument("--password", default=None, help="Wallet password (prompted if omitted)")
    sign.add_argument("--tx", required=True, help="Transaction JSON file")
    sign.add_argument("--out", default=None, help="Output file (default: stdout)")
    sign.set_defaults(func=cmd_sign)

    resolve = sub.add_parser("resolve", help="Resolve an epoch of proposed transactions")
    resolve.add_argument("--snapshot", default=None, help="UTXO snapshot JSON file")
    resolve.add_argument("--db", default=None, help="RocksDB path holding the UTXO set")
    resolve.add_argument("--epoch", required=True, help="Epoch JSON file")
    resolve.add_argument("--out", default=None, help="Where to write the new snapshot (JSON mode)")
    resolve.set_defaults(func=cmd_resolve)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level=LOG_LEVEL,
        log_file=LOG_FILE,
        enable_console=True,
        enable_structured=LOG_STRUCTURED,
    )
    try:
        return args.func(args)
    except (LedgerError, ModelValidationError, OSError, json.JSONDecodeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
