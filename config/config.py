import os
from decimal import Decimal

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE") or None
LOG_STRUCTURED = os.environ.get("LOG_STRUCTURED", "true").lower() in ("1", "true", "yes")

LEDGER_DB_PATH = os.environ.get("LEDGER_DB_PATH", "ledger.rocksdb")
WALLET_FILENAME = os.environ.get("WALLET_FILENAME", "wallet.json")

# Values are exact decimals held in whole base units of VALUE_QUANTUM
VALUE_DECIMALS = int(os.environ.get("VALUE_DECIMALS", "8"))
VALUE_QUANTUM = Decimal(1).scaleb(-VALUE_DECIMALS)
MAX_VALUE_UNITS = 2**63 - 1

PBKDF2_ROUNDS = int(os.environ.get("PBKDF2_ROUNDS", "100000"))

UTXO_KEY_PREFIX = b"utxo:"
