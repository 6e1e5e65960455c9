from typing import Optional


class AppError(Exception):
    """Operational error rendered as {"success": false, "message": ...}."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400

    def __init__(self, errors: list[dict], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors


class FileUploadError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404


class RateLimitError(AppError):
    status_code = 429


class StorageError(AppError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
