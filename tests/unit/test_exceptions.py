"""
Unit tests for exception categorization.
"""

from sqlalchemy.exc import OperationalError

from referral_engine.utils.exceptions import (
    ChainResolutionError,
    CommissionEngineError,
    DuplicateDistributionError,
    InvalidTierError,
    PersistenceError,
    TierConfigValidationError,
    is_safe_to_ignore,
    must_log,
    must_raise,
)


class TestExceptionCategories:
    """Test handling strategy lookup."""

    def test_duplicate_is_safe_to_ignore(self):
        """A duplicate distribution means the work is already done."""
        exc = DuplicateDistributionError("evt-1", 42)
        assert is_safe_to_ignore(exc)
        assert not must_raise(exc)
        assert "evt-1" in str(exc)

    def test_per_level_errors_are_logged(self):
        """Chain and tier problems affect one level and are logged."""
        assert must_log(ChainResolutionError(depositor_id=1, level=2, referrer_id=9))
        assert must_log(InvalidTierError("diamond"))
        assert must_log(OperationalError("SELECT 1", {}, Exception("timeout")))

    def test_callers_must_handle(self):
        """Storage and config failures propagate."""
        assert must_raise(PersistenceError("write failed"))
        assert must_raise(TierConfigValidationError("bad rates"))
        assert must_raise(ValueError("negative amount"))
        assert not is_safe_to_ignore(PersistenceError("write failed"))

    def test_hierarchy(self):
        """Engine errors share a common base."""
        for exc_type in (
            DuplicateDistributionError,
            InvalidTierError,
            PersistenceError,
            TierConfigValidationError,
        ):
            assert issubclass(exc_type, CommissionEngineError)

    def test_chain_resolution_attributes(self):
        """The failing link is kept on the exception."""
        exc = ChainResolutionError(depositor_id=5, level=3, referrer_id=77)
        assert (exc.depositor_id, exc.level, exc.referrer_id) == (5, 3, 77)
