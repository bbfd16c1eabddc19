from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger reports to its callers."""


class ValidationError(LedgerError, ValueError):
    pass


class NotFoundError(LedgerError, LookupError):
    pass


class ConflictError(LedgerError):
    pass


class PersistenceError(LedgerError):
    pass
