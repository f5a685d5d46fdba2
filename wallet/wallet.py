import os, json, getpass, logging, base64, hashlib
from typing import Optional, Tuple
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
import base58

from blockchain.transaction import Transaction, signing_payload
from config.config import WALLET_FILENAME, PBKDF2_ROUNDS
from errors.exceptions import AuthenticationError, InvalidArgumentError

logger = logging.getLogger(__name__)

_ADDRESS_PREFIX   = "led"
_AES_KEYLEN       = 32
_SALT_LEN         = 16
_IV_LEN           = 12
_CHECKSUM_LEN     = 4

_RAW = dict(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def _hex(b: bytes) -> str: return b.hex()

def derive_address(pub: bytes) -> str:
    """Human-readable address for a raw public key (display only)."""
    h = hashlib.sha3_256(pub).digest()
    versioned = bytes([0x00]) + h[:20]
    chk = hashlib.sha3_256(versioned).digest()[:_CHECKSUM_LEN]
    return _ADDRESS_PREFIX + base58.b58encode(versioned + chk).decode()

def _pbkdf2_key(password: str, salt: bytes) -> bytes:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(), length=_AES_KEYLEN,
        salt=salt, iterations=PBKDF2_ROUNDS
    ).derive(password.encode())

def _encrypt_privkey(priv_hex: str, password: str):
    salt, iv = os.urandom(_SALT_LEN), os.urandom(_IV_LEN)
    ct_tag = AESGCM(_pbkdf2_key(password, salt)).encrypt(iv, priv_hex.encode(), None)
    return (
        base64.b64encode(ct_tag).decode(),
        base64.b64encode(salt).decode(),
        base64.b64encode(iv).decode(),
    )

def _decrypt_privkey(enc_b64, password, salt_b64, iv_b64) -> str:
    ct_tag, salt, iv = map(base64.b64decode, (enc_b64, salt_b64, iv_b64))
    return AESGCM(_pbkdf2_key(password, salt)).decrypt(iv, ct_tag, None).decode()

def _load_private_key(priv_hex: str) -> Ed25519PrivateKey:
    try:
        return Ed25519PrivateKey.from_private_bytes(bytes.fromhex(priv_hex))
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid private key: {e}")


def generate_keypair() -> Tuple[str, str]:
    """Return ``(private_hex, public_hex)`` for a fresh Ed25519 key."""
    key = Ed25519PrivateKey.generate()
    priv = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return _hex(priv), _hex(key.public_key().public_bytes(**_RAW))

def public_key_of(priv_hex: str) -> bytes:
    return _load_private_key(priv_hex).public_key().public_bytes(**_RAW)

def sign_message(message: bytes, priv_hex: str) -> bytes:
    return _load_private_key(priv_hex).sign(message)

def verify_signature(owner: bytes, message: bytes, signature: bytes) -> bool:
    """Check ``signature`` over ``message`` against the raw public key ``owner``."""
    try:
        Ed25519PublicKey.from_public_bytes(owner).verify(signature, message)
        return True
    except InvalidSignature:
        return False
    except (ValueError, TypeError) as e:
        logger.debug(f"Malformed key or signature: {e}")
        return False

def sign_transaction_input(tx: Transaction, index: int, priv_hex: str) -> Transaction:
    """Return a copy of ``tx`` with input ``index`` signed by ``priv_hex``."""
    signature = sign_message(signing_payload(tx, index), priv_hex)
    return tx.with_signature(index, signature)

def sign_all_inputs(tx: Transaction, priv_hex: str) -> Transaction:
    for i in range(len(tx.inputs)):
        tx = sign_transaction_input(tx, i, priv_hex)
    return tx


def load_wallet_file(fname=WALLET_FILENAME) -> Optional[dict]:
    if not os.path.exists(fname):
        return None
    with open(fname) as f:
        return json.load(f)

def save_wallet_file(wallet: dict, fname=WALLET_FILENAME):
    with open(fname, "w") as f:
        json.dump(wallet, f, indent=2)


def generate_wallet(password: str) -> dict:
    """Generate an Ed25519 key-pair, derive address, encrypt private key."""
    priv_hex, pub_hex = generate_keypair()
    enc_priv, salt, iv = _encrypt_privkey(priv_hex, password)
    return {
        "address":              derive_address(bytes.fromhex(pub_hex)),
        "encryptedPrivateKey":  enc_priv,
        "PrivateKeySalt":       salt,
        "PrivateKeyIV":         iv,
        "publicKey":            pub_hex,
    }

def unlock_wallet(wallet: dict, password: str) -> dict:
    """Decrypt private key and return plaintext key + pubkey + address."""
    try:
        priv_hex = _decrypt_privkey(
            wallet["encryptedPrivateKey"], password,
            wallet["PrivateKeySalt"], wallet["PrivateKeyIV"])
    except (InvalidTag, KeyError, ValueError) as e:
        logger.error(f"Error unlocking wallet: {e!r}")
        raise AuthenticationError("Failed to unlock wallet") from e
    return {
        "privateKey": priv_hex,
        "publicKey":  wallet["publicKey"],
        "address":    wallet["address"],
    }

def get_or_create_wallet(fname=WALLET_FILENAME, password: Optional[str] = None) -> dict:
    wallet = load_wallet_file(fname)
    if wallet:
        password = password or getpass.getpass(f"Enter password to unlock {fname}: ")
        return unlock_wallet(wallet, password)

    if password is None:
        password = getpass.getpass("Enter a new password: ")
        if password != getpass.getpass("Confirm password: "):
            raise AuthenticationError("Passwords do not match")

    wallet_json = generate_wallet(password)
    save_wallet_file(wallet_json, fname)
    logger.info(f"Wallet generated -> {fname}")
    return unlock_wallet(wallet_json, password)
