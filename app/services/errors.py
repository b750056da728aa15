from typing import Any


class LedgerError(Exception):
    """Base class for failures the registration ledger reports to callers."""

    status_code = 500

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LedgerError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    """The entity is in a state that does not allow the operation."""

    status_code = 400


class CapacityError(LedgerError):
    status_code = 400


class DuplicateError(LedgerError):
    status_code = 400


class PersistenceError(LedgerError):
    status_code = 500


class LockUnavailableError(PersistenceError):
    status_code = 503


DUPLICATE_REGISTRATION = "Email is already registered for this event"
