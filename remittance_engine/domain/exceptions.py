"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Contract, rule or collection input rejected before persistence"""

    pass


class InvalidIdentifierError(ValidationError):
    """Identifier is not a well-formed UUID"""

    pass


class NotFoundError(DomainException):
    """Requested contract, cycle or export does not exist"""

    pass


class InvalidTransitionError(DomainException):
    """Requested cycle state change is not the immediate successor of the current state"""

    def __init__(self, cycle_id: str, current: str, requested: str, reason: str | None = None):
        self.cycle_id = cycle_id
        self.current = current
        self.requested = requested
        message = f"Cycle {cycle_id} cannot move from '{current}' to '{requested}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class WaterfallImbalanceError(DomainException):
    """Investor and servicer splits do not add up to collected cash. Fatal, never auto-corrected."""

    def __init__(self, message: str, expected_minor: int = 0, actual_minor: int = 0):
        self.expected_minor = expected_minor
        self.actual_minor = actual_minor
        super().__init__(message)


class SettlementPostingError(DomainException):
    """Ledger write failed; the transaction was rolled back and the cycle is still locked"""

    def __init__(self, cycle_id: str, message: str):
        self.cycle_id = cycle_id
        super().__init__(f"Settlement of cycle {cycle_id} failed: {message}")


class LedgerError(DomainException):
    """Ledger repository refused a transaction"""

    pass


class ReconciliationException(DomainException):
    """
    Posted ledger totals differ from calculated totals.

    Recorded as an unbalanced snapshot and logged for manual review; never raised.
    """

    def __init__(self, cycle_id: str, diff_investor_minor: int, diff_servicer_minor: int, diff_total_minor: int):
        self.cycle_id = cycle_id
        self.diff_investor_minor = diff_investor_minor
        self.diff_servicer_minor = diff_servicer_minor
        self.diff_total_minor = diff_total_minor
        super().__init__(
            f"Cycle {cycle_id} unbalanced: investor={diff_investor_minor} "
            f"servicer={diff_servicer_minor} total={diff_total_minor}"
        )
