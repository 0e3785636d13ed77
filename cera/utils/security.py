"""
Actor resolution: turn request credentials into a verified identity.

- AUTH_PROVIDER='firebase': `Authorization: Bearer <Firebase ID token>`,
  verified with firebase_admin.auth
- AUTH_PROVIDER='header': trusts the `X-User-ID` header (local development
  and tests only)

The identity id is the user id; the role and display name come from the
user directory.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from firebase_admin import auth

from cera.core.errors import UnauthorizedError, UpstreamError
from cera.core.settings import settings
from cera.models.user import Actor
from cera.repositories import get_user_repository
from cera.repositories.base import UserRepository

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise UnauthorizedError("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Invalid authorization header")
    return token.strip()


def verify_firebase_token(token: str) -> str:
    """Verify a Firebase ID token and return its uid."""
    from cera.config.firebase import initialize_firebase_app

    initialize_firebase_app()
    try:
        decoded = auth.verify_id_token(token)
    except auth.CertificateFetchError as e:
        logger.error(f"Could not fetch token signing certificates: {e}")
        raise UpstreamError("Token verification unavailable")
    except (ValueError, auth.InvalidIdTokenError) as e:
        logger.info(f"Rejected ID token: {e}")
        raise UnauthorizedError("Invalid or expired token")
    return decoded["uid"]


def get_identity(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> str:
    """
    FastAPI dependency: the caller's verified identity id.

    Does not require a profile to exist, so registration can use it.
    """
    if settings.AUTH_PROVIDER.lower() == "header":
        if not x_user_id or not x_user_id.strip():
            raise UnauthorizedError("No user id provided")
        return x_user_id.strip()
    return verify_firebase_token(_bearer_token(authorization))


def get_current_actor(
    identity: str = Depends(get_identity),
    users: UserRepository = Depends(get_user_repository),
) -> Actor:
    """FastAPI dependency: the caller as an Actor with role and display name."""
    user = users.get(identity)
    if user is None:
        raise UnauthorizedError("Unknown user")
    return Actor(id=user.id, role=user.role, display_name=user.display_name)
