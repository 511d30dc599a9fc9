# slowpost/exceptions.py
"""
Error types shared by the services and the HTTP layer
"""


class LetterError(Exception):
    """Base error carrying the HTTP status the API should answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class LetterValidationError(LetterError):
    status_code = 400


class EditForbiddenError(LetterError):
    status_code = 401


class LetterNotFoundError(LetterError):
    status_code = 404


class StorageUnavailableError(LetterError):
    status_code = 503


class StorageError(Exception):
    """Raised by storage backends when a read or write cannot complete."""


class AssetUploadError(StorageError):
    """An asset upload kept failing after every retry."""
