"""
Application error taxonomy

Every error carries an HTTP status, a user-safe message and an OAuth-style
error code used when the failure has to be reported through a redirect.
"""

from typing import Dict, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for expected, user-presentable failures."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "server_error"
    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.default_message,
            headers=headers
        )
        if error_code:
            self.error_code = error_code

    @property
    def message(self) -> str:
        return self.detail


class NotConfigured(AppError):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "temporarily_unavailable"
    default_message = "This login method is not available at this time"


class InvalidRequest(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_request"
    default_message = "The authentication request was invalid."


class MissingSessionState(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_state"
    default_message = "Session expired. Please try again."


class StateMismatch(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_state"
    default_message = "State validation failed"


# Curated user-facing messages per provider error code
PROVIDER_ERROR_MESSAGES = {
    "invalid_grant": "Authorization code has expired or already been used. Please try again.",
    "invalid_client": "OAuth client configuration error. Please contact support.",
    "invalid_request": "Invalid OAuth request. Please try again.",
    "access_denied": "Access was denied. Please try again and grant the required permissions.",
    "server_error": "The provider encountered an error. Please try again later.",
    "invalid_response": "Invalid response from the login provider.",
    "missing_email": "Your account does not have an email address.",
}

GENERIC_PROVIDER_MESSAGE = "Authentication with the login provider failed. Please try again."


class ProviderExchangeFailed(AppError):
    """The provider rejected the code exchange or returned unusable data."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_grant"

    def __init__(self, provider_error: str, provider: Optional[str] = None):
        self.provider_error = provider_error
        self.provider = provider
        redirect_code = provider_error if provider_error in ("invalid_grant", "access_denied", "invalid_request") else "server_error"
        super().__init__(
            PROVIDER_ERROR_MESSAGES.get(provider_error, GENERIC_PROVIDER_MESSAGE),
            error_code=redirect_code
        )


class ProviderUnreachable(AppError):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "temporarily_unavailable"
    default_message = "Unable to connect to the login provider. Please try again later."


class ProviderTimeout(AppError):
    status_code_default = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "temporarily_unavailable"
    default_message = "The login provider did not respond in time. Please try again later."


class AccountForbidden(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error_code = "access_denied"
    default_message = "Your account is not allowed to sign in. Please contact support."


class InvalidToken(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error_code = "invalid_token"
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error_code = "invalid_credentials"
    default_message = "Invalid email or password"


class NotFound(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_message = "Resource not found"


class InvalidArgument(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_argument"
    default_message = "Invalid argument"


class Conflict(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    error_code = "conflict"
    default_message = "Resource already exists"


class RateLimited(AppError):
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "temporarily_unavailable"
    default_message = "Too many attempts. Please try again later."


class StorageError(AppError):
    status_code_default = status.HTTP_502_BAD_GATEWAY
    error_code = "server_error"
    default_message = "File storage is unavailable. Please try again later."
