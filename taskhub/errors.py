"""Error taxonomy shared by the stores, the auth gate and the HTTP layer.

Each error is an HTTPException with a fixed status code so store code can
raise it directly and FastAPI routes it to the handlers in ``main``.
"""
from fastapi import HTTPException, status


class TaskHubError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = 'internal error'

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(status_code=self.status_code, detail=self.message)


class ValidationError(TaskHubError):
    """Malformed or missing input. ``errors`` maps field name to message."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = 'invalid data'

    def __init__(self, errors: dict[str, str] | None = None, message: str | None = None):
        self.errors = dict(errors or {})
        if message is None and self.errors:
            message = '; '.join(f'{k}: {v}' for k, v in self.errors.items())
        super().__init__(message)


class DuplicateEmail(TaskHubError):
    status_code = status.HTTP_409_CONFLICT
    message = 'email already registered'


class AuthFailure(TaskHubError):
    # Same message for unknown email and wrong password.
    status_code = status.HTTP_401_UNAUTHORIZED
    message = 'invalid email or password'


class NotAuthenticated(TaskHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = 'authentication required'


class AlreadyAuthenticated(TaskHubError):
    status_code = status.HTTP_409_CONFLICT
    message = 'already logged in'


class Forbidden(TaskHubError):
    status_code = status.HTTP_403_FORBIDDEN
    message = 'forbidden'


class NotFound(TaskHubError):
    status_code = status.HTTP_404_NOT_FOUND
    message = 'not found'


class StoreUnavailable(TaskHubError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = 'store unavailable'
