"""
Auth provider: turns bearer tokens and email/password pairs into identities.

Token issuance belongs to Supabase Auth. This module only asks it (or
checks its signature locally) who a token belongs to.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from supabase import Client, create_client

from ticketing.config import Settings

SUPABASE_AUDIENCE = "authenticated"


class AuthProviderError(Exception):
    """The provider rejected the credential."""


@dataclass(frozen=True)
class Identity:
    """Stable reference to an authenticated caller; matched against users.auth_id."""

    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class SignInResult:
    identity: Identity
    user: Dict[str, Any]
    session: Optional[Dict[str, Any]]


class AuthProvider(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> Identity:
        """Return the identity behind token or raise AuthProviderError."""
        ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> SignInResult:
        """Exchange credentials for a session or raise AuthProviderError."""
        ...


def _dump(model: Any) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json")
    return dict(model)


class SupabaseAuthProvider(AuthProvider):
    """
    Supabase Auth backed provider.

    With a project JWT secret, access tokens are verified locally (HS256,
    audience "authenticated", expiry enforced). Without one, every token is
    sent to Supabase Auth.
    """

    def __init__(self, client: Client, jwt_secret: Optional[str] = None) -> None:
        self._client = client
        self._jwt_secret = jwt_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseAuthProvider":
        client = create_client(settings.supabase_url, settings.supabase_key)
        return cls(client, jwt_secret=settings.supabase_jwt_secret)

    def verify_token(self, token: str) -> Identity:
        if self._jwt_secret:
            return self._decode(token)

        try:
            response = self._client.auth.get_user(token)
        except Exception as e:
            logging.info(f"[Auth] Token rejected by provider: {e}")
            raise AuthProviderError("invalid token") from e

        user = response.user if response else None
        if not user:
            raise AuthProviderError("invalid token")
        return Identity(id=str(user.id), email=user.email)

    def _decode(self, token: str) -> Identity:
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=["HS256"],
                audience=SUPABASE_AUDIENCE,
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthProviderError("token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthProviderError("invalid token") from e

        sub = payload.get("sub")
        if not sub:
            raise AuthProviderError("token has no subject")
        return Identity(id=str(sub), email=payload.get("email"))

    def sign_in(self, email: str, password: str) -> SignInResult:
        try:
            response = self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            logging.info(f"[Auth] Sign-in rejected for {email}: {e}")
            raise AuthProviderError("invalid credentials") from e

        if not response or not response.user:
            raise AuthProviderError("invalid credentials")

        user = response.user
        return SignInResult(
            identity=Identity(id=str(user.id), email=user.email),
            user=_dump(user),
            session=_dump(response.session),
        )
