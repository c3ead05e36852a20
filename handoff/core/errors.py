"""Errors raised by the escalation core."""


class EscalationError(Exception):
    """Base exception for escalation errors."""
    pass


class NotFoundError(EscalationError):
    """A conversation, escalation or operator does not exist for the tenant."""

    def __init__(self, entity: str, entity_id: int | None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class InvalidStateError(EscalationError):
    """Operation is not legal from the record's current status."""
    pass


class OperatorAtCapacityError(InvalidStateError):
    """Operator has no free slot for another conversation."""

    def __init__(self, operator_id: int) -> None:
        self.operator_id = operator_id
        super().__init__(f"Operator {operator_id} is at maximum capacity")


class ValidationError(EscalationError, ValueError):
    """Unknown enum value or malformed input, rejected before any mutation."""
    pass
