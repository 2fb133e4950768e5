from typing import List, Optional


class AppError(Exception):
    """Operational error surfaced to the caller.

    ``message_key`` is a translation key (see translations.py); ``code`` is the
    stable machine-readable identifier clients can branch on.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    default_key = "common.internal_server_error"

    def __init__(self, message_key: Optional[str] = None, errors: Optional[List[str]] = None, **params):
        self.message_key = message_key or self.default_key
        self.errors = errors
        self.params = params
        super().__init__(self.message_key)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_key = "common.not_found"


class Unavailable(AppError):
    status_code = 400
    code = "UNAVAILABLE"
    default_key = "product.not_available"


class InsufficientStock(AppError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"
    default_key = "product.insufficient_stock"


class InvalidTransition(AppError):
    status_code = 409
    code = "INVALID_TRANSITION"
    default_key = "order.invalid_transition"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_key = "auth.access_denied"


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_key = "auth.authentication_required"


class TooManyRequests(AppError):
    status_code = 429
    code = "TOO_MANY_REQUESTS"
    default_key = "auth.too_many_otp_requests"

    def __init__(self, message_key: Optional[str] = None, retry_after: int = 0, **params):
        super().__init__(message_key, **params)
        self.retry_after = retry_after


class ValidationFailed(AppError):
    status_code = 400
    code = "VALIDATION_FAILED"
    default_key = "validation.validation_failed"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    default_key = "validation.duplicate_field"


class EmailDeliveryFailed(AppError):
    status_code = 500
    code = "EMAIL_DELIVERY_FAILED"
    default_key = "email.email_send_failed"
