"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ProviderAPIError(DomainException):
    """Risk provider returned an error, timed out, or sent an unparseable body"""

    pass


class LimitsStoreUnavailableError(DomainException):
    """Backing store for the limits tracker could not be read or written"""

    pass


class InvalidTransactionError(DomainException):
    """Transaction request violates a structural invariant"""

    pass


class InvariantViolationError(DomainException):
    """An evaluator produced a malformed verdict (programming error)"""

    pass
