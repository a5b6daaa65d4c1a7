from packages.auth.models.domain.authenticated_user import AuthenticatedUser

__all__ = [
    "AuthenticatedUser",
]
