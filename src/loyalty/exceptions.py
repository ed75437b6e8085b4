"""Exceptions raised by the loyalty ledger."""


class LoyaltyError(Exception):
    """Base exception for loyalty ledger errors."""

    pass


class UnknownPassError(LoyaltyError):
    """Raised when an issued pass cannot be found."""

    pass


class InvalidTemplateError(LoyaltyError):
    """Raised when a stored pass design cannot be parsed into a template."""

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable summary.
            errors: Per-field error entries ({"field": ..., "message": ...}).
        """
        super().__init__(message)
        self.errors = errors or []


class NotEnoughStampsError(LoyaltyError):
    """Raised when a reward is redeemed before the stamp card is full."""

    def __init__(self, current: int, required: int) -> None:
        """Initialize the error.

        Args:
            current: Stamps currently on the card.
            required: Stamps needed to redeem.
        """
        super().__init__(f"Not enough stamps: {current} of {required}")
        self.current = current
        self.required = required


class StampCardNotConfiguredError(LoyaltyError):
    """Raised when a stamp scan hits a card without a positive stamp target."""

    pass


class StateConflictError(LoyaltyError):
    """Raised when a state mutation keeps losing optimistic concurrency races."""

    pass
