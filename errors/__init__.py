from .exceptions import (
    LedgerError,
    InvalidArgumentError,
    UTXONotFoundError,
    ValidationError,
    DatabaseError,
    AuthenticationError,
)

__all__ = [
    "LedgerError",
    "InvalidArgumentError",
    "UTXONotFoundError",
    "ValidationError",
    "DatabaseError",
    "AuthenticationError",
]
