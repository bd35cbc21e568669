"""
Error classes surfaced to API callers as an HTTP status plus a short message.
"""


class CadenzaError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"message": self.message}


class ValidationError(CadenzaError):
    """Missing required fields or bad values."""
    status_code = 400


class UnauthorizedError(CadenzaError):
    status_code = 401

    def __init__(self, message: str = "Please authenticate."):
        super().__init__(message)


class ForbiddenError(CadenzaError):
    """A non-owner tried to read or mutate a private resource."""
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class NotFoundError(CadenzaError):
    status_code = 404


class StreamingIOError(NotFoundError):
    """The song record exists but its audio file is missing from storage."""

    def __init__(self, message: str = "Audio file not found"):
        super().__init__(message)


class ConflictError(CadenzaError):
    status_code = 409


class UploadRejectedError(CadenzaError):
    """Disallowed file type or size. Raised before anything is persisted."""
    status_code = 400
