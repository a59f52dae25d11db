class LedgerError(Exception):
    """Base class for failures reported back to the caller of a ledger operation."""


class ValidationError(LedgerError, ValueError):
    """A field is missing or invalid; nothing was written."""


class AuthorizationError(LedgerError, ValueError):
    """The caller is not allowed to touch this transaction."""


class NotFoundError(LedgerError, ValueError):
    pass


class StoreError(LedgerError):
    """The relational store failed. Never retried."""
