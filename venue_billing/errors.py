"""Error taxonomy for the billing and attribution engine."""
from __future__ import annotations


class BillingError(Exception):
    """Base exception for billing engine errors."""
    pass


class ConfigurationError(BillingError):
    """Raised for an unknown pricing plan or nomination type."""
    pass


class InvalidQuoteInputError(BillingError, ValueError):
    """Raised when quote input carries malformed rates or negative amounts."""
    pass


class NotFoundError(BillingError, LookupError):
    """Raised when a referenced record does not exist."""
    pass


class DuplicateEngagementError(BillingError):
    """Raised when a cast already has an active engagement on the visit."""

    def __init__(self, visit_id, cast_id):
        self.visit_id = visit_id
        self.cast_id = cast_id
        super().__init__(f"Cast {cast_id} is already assigned to visit {visit_id}")


class StateTransitionError(BillingError):
    """Raised when acting on a terminal engagement or visit."""
    pass


class AttributionImbalanceError(BillingError, ValueError):
    """Raised when attribution percentages do not sum to 100."""

    def __init__(self, total):
        self.total = total
        super().__init__(f"Attribution percentages must sum to 100 (got {total})")


class AttributionTargetError(BillingError, ValueError):
    """Raised when an attribution names a cast that is not engaged on the visit."""
    pass


class SharePercentageError(BillingError, ValueError):
    """Raised when guest share percentages do not sum to 100."""

    def __init__(self, total):
        self.total = total
        super().__init__(f"Shared percentages must sum to 100 (got {total})")


class GuestAssignmentError(BillingError, ValueError):
    """Raised when an order line cannot be assigned to the given guest."""
    pass
