"""Exceptions raised by the billing service and the storage layer."""


class LedgerError(Exception):
    """Base class for every failure reported by a ledger operation."""


class ValidationError(LedgerError, ValueError):
    """Input rejected before anything was written."""


class NotFoundError(LedgerError, KeyError):
    """The contract, invoice or booking does not exist (any more)."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f'{kind} {record_id!r} not found')

    def __str__(self):
        return self.args[0]


class StorageError(LedgerError):
    """Read or write against the store failed; nothing from the batch was applied."""
