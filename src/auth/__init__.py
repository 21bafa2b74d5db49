"""Authentication package."""

from src.auth.provider import (
    AuthProvider,
    CallerIdentity,
    StaticAuthProvider,
    UnauthorizedError,
)

__all__ = [
    "AuthProvider",
    "CallerIdentity",
    "StaticAuthProvider",
    "UnauthorizedError",
]
