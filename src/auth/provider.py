"""
Authentication Provider Interface

The auth provider is an external collaborator: all the service needs
is "who is calling", or None when nobody is signed in.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CallerIdentity(BaseModel):
    """The signed-in user as reported by the auth provider."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    name: Optional[str] = None


class AuthProvider(ABC):
    """Resolves the caller of the current request."""

    @abstractmethod
    async def current_identity(self) -> Optional[CallerIdentity]:
        """
        Return the caller's identity.

        Returns:
            The identity, or None when the caller is not authenticated
        """
        pass


class StaticAuthProvider(AuthProvider):
    """
    Auth provider that always reports the same identity.

    Used by tests and scripts; `sign_out()` simulates an anonymous caller.
    """

    def __init__(self, identity: Optional[CallerIdentity] = None):
        self._identity = identity

    async def current_identity(self) -> Optional[CallerIdentity]:
        return self._identity

    def sign_in(self, identity: CallerIdentity) -> None:
        self._identity = identity

    def sign_out(self) -> None:
        self._identity = None


class UnauthorizedError(Exception):
    """Caller is not signed in."""
    pass
