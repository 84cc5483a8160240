class LedgerError(Exception):
    """Base class for errors the API turns into a JSON error response."""

    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(LedgerError):
    """Invalid input."""


class Unauthorized(LedgerError):
    """Authentication required"""

    status_code = 401


class PermissionDenied(LedgerError):
    """You do not have permission to perform this action"""

    status_code = 403


class CompanyRequired(LedgerError):
    """Company setup required"""


class NotFound(LedgerError):
    """Not found"""

    status_code = 404


class InvalidStatusTransition(LedgerError):
    """Raised when an invoice cannot move from its current status to the requested one."""

    status_code = 409

    def __init__(self, current, requested):
        super().__init__(f"Cannot change invoice status from {current} to {requested}")
        self.current = current
        self.requested = requested


class DuplicatePosting(LedgerError):
    """This event has already been posted"""

    status_code = 409


class UnbalancedJournalError(LedgerError):
    """Raised when a journal entry fails the double-entry balance check."""

    status_code = 400

    def __init__(self, total_debit, total_credit):
        super().__init__(
            f"Journal entry is unbalanced: debits={total_debit} credits={total_credit}"
        )
        self.total_debit = total_debit
        self.total_credit = total_credit
