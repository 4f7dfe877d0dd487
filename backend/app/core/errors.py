"""Domain errors for policies, commissions and renewals.

Each error carries an HTTP status and a stable machine code so the API layer
can render it without knowing about individual exception types.
"""


class AppError(Exception):
    status_code = 500
    code = "APP_ERROR"

    def __init__(self, message: str, status_code: int = None, code: str = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class RuleNotFound(AppError):
    """No commission rule is effective for the company / policy type / date."""
    status_code = 404
    code = "RULE_NOT_FOUND"


class TierNotFound(AppError):
    """A rule matched but none of its tiers covers the premium."""
    status_code = 422
    code = "TIER_NOT_FOUND"


class InvalidPercentage(AppError):
    status_code = 422
    code = "INVALID_PERCENTAGE"


class InvalidTierConfiguration(AppError):
    status_code = 422
    code = "INVALID_TIER_CONFIGURATION"


class OverlappingRuleWindow(AppError):
    status_code = 409
    code = "OVERLAPPING_RULE_WINDOW"


class InvalidTransition(AppError):
    status_code = 409
    code = "INVALID_TRANSITION"


class DuplicateCommissionEvent(AppError):
    """A commission for this (policy, type, event) already exists.

    Raised by the persistence layer when the uniqueness guard trips; callers
    treat it as an idempotent success.
    """
    status_code = 409
    code = "DUPLICATE_COMMISSION_EVENT"


class RowValidationError(AppError):
    """Validation failure for one bulk-import row. Collected, never raised out of a batch."""
    status_code = 422
    code = "ROW_VALIDATION_ERROR"

    def __init__(self, row: int, message: str):
        super().__init__(message)
        self.row = row
