"""
Exception handling utilities.

Defines the commission engine error taxonomy and categorizes exceptions by
handling strategy.
"""

from sqlalchemy.exc import OperationalError


class CommissionEngineError(Exception):
    """Base exception for the commission engine."""


class ChainResolutionError(CommissionEngineError):
    """A referrer could not be loaded mid-walk; the chain is truncated."""

    def __init__(self, depositor_id: int, level: int, referrer_id: int) -> None:
        self.depositor_id = depositor_id
        self.level = level
        self.referrer_id = referrer_id
        super().__init__(
            f"Referrer {referrer_id} at level {level} of depositor "
            f"{depositor_id} could not be resolved"
        )


class DuplicateDistributionError(CommissionEngineError):
    """The dedup unique constraint rejected a commission record."""

    def __init__(self, source_event_id: str, depositor_id: int) -> None:
        self.source_event_id = source_event_id
        self.depositor_id = depositor_id
        super().__init__(
            f"Commission for event {source_event_id} of depositor "
            f"{depositor_id} already distributed"
        )


class InvalidTierError(CommissionEngineError):
    """Unknown membership tier string."""

    def __init__(self, tier: object) -> None:
        self.tier = tier
        super().__init__(f"Unknown membership tier: {tier!r}")


class PersistenceError(CommissionEngineError):
    """Storage write failed; the caller should retry the whole event."""


class TierConfigValidationError(CommissionEngineError):
    """Commission rate table violates configuration bounds."""


class UserNotFoundError(CommissionEngineError):
    """User does not exist."""


class CommissionRecordNotFoundError(CommissionEngineError):
    """Commission record does not exist."""


class InvalidStatusTransitionError(CommissionEngineError):
    """Commission status change not allowed."""


# Exception categories based on handling strategy

# Safe to ignore - the desired state already holds
SAFE_TO_IGNORE = (
    DuplicateDistributionError,
)

# Must log but can continue - affects a single level or user
MUST_LOG = (
    ChainResolutionError,
    InvalidTierError,
    OperationalError,
)

# Must raise - caller has to retry or fix input
MUST_RAISE = (
    PersistenceError,
    TierConfigValidationError,
    ValueError,
)


def is_safe_to_ignore(exc: Exception) -> bool:
    """
    Check if exception can be safely ignored.

    Args:
        exc: Exception to check

    Returns:
        True if exception is safe to ignore
    """
    return isinstance(exc, SAFE_TO_IGNORE)


def must_log(exc: Exception) -> bool:
    """
    Check if exception must be logged.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be logged
    """
    return isinstance(exc, MUST_LOG)


def must_raise(exc: Exception) -> bool:
    """
    Check if exception must be raised.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be raised
    """
    return isinstance(exc, MUST_RAISE)
