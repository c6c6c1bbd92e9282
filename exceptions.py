"""
Error types shared by the store clients, services and routes
"""

from typing import Optional


class ValidationFailure(Exception):
    """Request is missing or has malformed fields"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(Exception):
    """
    The auth/data store refused a call (constraint violation, permission,
    duplicate, unknown column...). The message is passed to the caller verbatim.
    """

    def __init__(self, message: str, status_code: int = 400, code: Optional[str] = None,
                 details: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        self.hint = hint


class RecordNotFound(BackendError):
    """A single-row lookup matched nothing"""

    def __init__(self, message: str = 'JSON object requested, multiple (or no) rows returned'):
        super().__init__(message, status_code=404, code='PGRST116')


class AuthenticationError(BackendError):
    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message, status_code=401)


class PermissionDenied(Exception):
    status_code = 403

    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message)
        self.message = message
