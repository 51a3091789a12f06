# core/exceptions.py
from __future__ import annotations


class ServiceError(Exception):
    """
    Base class for every rejection raised by the services.
    `code` is the stable classification the HTTP layer maps to a status;
    `message` is safe to show to the caller.
    """

    code = "error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(ServiceError):
    code = "validation_error"


class InvalidNumberError(ValidationError):
    code = "invalid_number"


class BelowMinimumError(ValidationError):
    code = "below_minimum"


class NotFoundError(ServiceError):
    code = "not_found"


class InsufficientBalanceError(ServiceError):
    code = "insufficient_balance"


class InsufficientInitiatorBalanceError(InsufficientBalanceError):
    code = "insufficient_initiator_balance"


class PreconditionError(ServiceError):
    code = "precondition_failed"


class GameNotOpenError(PreconditionError):
    code = "game_not_open"


class NoCommissionSettingsError(PreconditionError):
    code = "no_commission_settings"


class ConflictError(ServiceError):
    code = "conflict"


class GameAlreadyExistsError(ConflictError):
    code = "already_exists"


class PermissionDeniedError(ServiceError):
    code = "forbidden"
