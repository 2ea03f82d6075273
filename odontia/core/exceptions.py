"""
Domain exceptions raised by the service layer.
main.py registers handlers that turn them into JSON error responses.
"""

from fastapi import status


class OdontiaError(Exception):
    """Base class for business-rule failures"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OdontiaError):
    """Malformed or out-of-range input"""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStatusTransitionError(ValidationError):
    """Requested status is not reachable from the current one"""

    def __init__(self, entity: str, current, requested):
        super().__init__(
            f"Cannot change {entity} status from {_value(current)} to {_value(requested)}"
        )
        self.current = current
        self.requested = requested


class InsufficientBalanceError(ValidationError):
    """Payment would overdraw the invoice balance"""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, amount, balance):
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance of {balance}"
        )
        self.amount = amount
        self.balance = balance


class NotFoundError(OdontiaError):
    """Entity id does not resolve inside the caller's tenant"""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(OdontiaError):
    """Write collides with existing state (time slot taken, concurrent balance change)"""

    status_code = status.HTTP_409_CONFLICT


def _value(status_value) -> str:
    return getattr(status_value, "value", str(status_value))
