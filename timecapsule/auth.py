"""
Identity provider clients. Token verification happens in the external
provider; this module only resolves a bearer token to a user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests

REQUEST_TIMEOUT = 10  # seconds


class AuthenticationError(Exception):
    """The provider rejected the token."""


@dataclass
class AuthUser:
    id: str
    email: str = ""
    role: Optional[str] = None


class IdentityProvider(Protocol):
    def get_user(self, token: str) -> AuthUser:
        ...


@dataclass
class InMemoryIdentityProvider:
    """Token table for development and tests."""

    tokens: Dict[str, AuthUser] = field(default_factory=dict)

    def register(self, token: str, user: AuthUser) -> None:
        self.tokens[token] = user

    def reset(self) -> None:
        self.tokens.clear()

    def get_user(self, token: str) -> AuthUser:
        user = self.tokens.get(token)
        if user is None:
            raise AuthenticationError("Invalid or expired token.")
        return user


@dataclass
class SupabaseIdentityProvider:
    """Resolves access tokens through the Supabase auth REST API."""

    url: str
    api_key: str
    timeout: float = REQUEST_TIMEOUT

    def get_user(self, token: str) -> AuthUser:
        response = requests.get(
            f"{self.url.rstrip('/')}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": self.api_key},
            timeout=self.timeout,
        )
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired token.")
        response.raise_for_status()

        payload = response.json()
        if not payload.get("id"):
            raise AuthenticationError("Invalid or expired token.")
        app_metadata = payload.get("app_metadata") or {}
        return AuthUser(
            id=payload["id"],
            email=payload.get("email") or "",
            role=app_metadata.get("role"),
        )
