"""Custom exception classes for the subscription & rule engine."""


class EngineError(Exception):
    """Base exception for the engine."""
    pass


class InputValidationError(EngineError):
    """Malformed input handed to an ingestion or loading helper."""
    pass


class InvalidTransitionError(EngineError):
    """A subscription status change not allowed from its current state."""

    def __init__(self, subscription_id: str, current: str, target: str):
        self.subscription_id = subscription_id
        self.current = current
        self.target = target
        super().__init__(
            f"Subscription '{subscription_id}' cannot move from '{current}' to '{target}'"
        )
