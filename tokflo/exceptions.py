from typing import Any, Optional


class TokFloError(Exception):
    """Base class for errors raised by the TokFlo services."""


class NotFoundError(TokFloError, LookupError):
    pass


class ValidationError(TokFloError, ValueError):
    pass


class PermissionDeniedError(TokFloError, PermissionError):
    pass


class SignatureError(ValidationError):
    """A webhook signature was missing the secret or did not match."""


class PaymentGatewayError(TokFloError, RuntimeError):
    """
    The payment gateway answered with a non-2xx status or could not be
    reached. ``payload`` keeps the decoded error body when there was one.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def is_validation_error(self) -> bool:
        if self.status_code in (400, 422):
            return True
        return "validation" in self.message.lower()


__all__ = [
    "TokFloError",
    "NotFoundError",
    "ValidationError",
    "PermissionDeniedError",
    "SignatureError",
    "PaymentGatewayError",
]
