class AppException(Exception):
    """Base application exception."""

    pass


class NotFoundError(AppException):
    """Resource not found exception."""

    pass


class ValidationError(AppException):
    """Validation error exception."""

    pass


class ConfigurationError(AppException):
    """Missing or invalid configuration (price mapping, credentials)."""

    pass
