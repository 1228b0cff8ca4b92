from __future__ import annotations


class AppError(Exception):
    """Base class for errors that are turned into a JSON response at the HTTP boundary."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    kind = "validation_error"
    status_code = 400


class AuthenticationError(AppError):
    kind = "authentication_error"
    status_code = 401


class AuthorizationError(AppError):
    kind = "authorization_error"
    status_code = 403


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404


class BusinessRuleError(AppError):
    kind = "business_rule_error"
    status_code = 400


class ServerError(AppError):
    kind = "server_error"
    status_code = 500

    public_message = "Internal server error"
