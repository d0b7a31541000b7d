"""Auth exceptions."""


class AuthException(Exception):
    """Base auth exception with HTTP status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BadRequestError(AuthException):
    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class UnauthorizedError(AuthException):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class ForbiddenError(AuthException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


class NotFoundError(AuthException):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ConflictError(AuthException):
    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)
