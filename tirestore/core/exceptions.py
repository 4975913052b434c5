from fastapi import status
from typing import Any, List, Optional


class APIError(Exception):
    """Base for errors rendered into the standard error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors if errors is not None else [{"code": self.code}]
        super().__init__(self.message)


class ValidationError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid request"


class UnauthorizedError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "Not authenticated"


class ForbiddenError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Access denied"


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class ConflictError(APIError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Resource already exists"


class TooManyAttemptsError(APIError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "too_many_attempts"
    default_message = "Too many attempts"


class UpstreamError(APIError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"
    default_message = "Upstream service failed"


class EmailAlreadyExists(ConflictError):
    code = "email_exists"
    default_message = "Email already registered. Please login or use a different email."


class InvalidCredentials(UnauthorizedError):
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class ProductNotFound(NotFoundError):
    default_message = "Product not found"


class OrderNotFound(NotFoundError):
    default_message = "Order not found"


class SKUAlreadyExists(ConflictError):
    code = "sku_exists"
    default_message = "SKU already exists"
