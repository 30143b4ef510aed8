class AppError(Exception):
    def __init__(self, message: str, status_code: int, errors=None):
        """
        Custom exception class for application errors.

        Args:
            message (str): The error message.
            status_code (int): The HTTP status code associated with the error.
            errors (list | None): Optional field-level details for the client.
        """
        super().__init__(message)

        self.status_code = status_code
        self.status = "fail" if str(status_code).startswith("4") else "error"
        self.errors = errors
        self.is_operational = True

    def to_dict(self) -> dict:
        body = {"status": self.status, "message": str(self)}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed", errors=None):
        super().__init__(message, 400, errors)


class AuthError(AppError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, 403)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class ConflictError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 409)


class GatewayError(AppError):
    """Raised when the payment gateway is unreachable or rejects a request."""

    def __init__(self, message: str = "Payment gateway error", upstream: str | None = None):
        super().__init__(message, 502)
        self.upstream = upstream
