"""
Custom exception classes for the settlement ledger
"""

class LedgerError(Exception):
    """Base exception for ledger operations"""
    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or "LEDGER_ERROR"

class InvalidArgumentError(LedgerError):
    """Caller passed malformed input (contract violation)"""
    def __init__(self, message: str):
        super().__init__(message, "INVALID_ARGUMENT")

class UTXONotFoundError(LedgerError):
    """Requested output is not in the unspent-output set"""
    def __init__(self, key: str):
        super().__init__(f"UTXO {key} not found", "UTXO_NOT_FOUND")
        self.key = key

class ValidationError(LedgerError):
    """Transaction data could not be decoded or validated"""
    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")

class DatabaseError(LedgerError):
    """Database operation errors"""
    def __init__(self, message: str):
        super().__init__(message, "DATABASE_ERROR")

class AuthenticationError(LedgerError):
    """Wallet could not be unlocked"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, "AUTH_ERROR")
