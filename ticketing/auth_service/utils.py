"""
Shared authentication helpers.
Provides bearer token verification and the role policy every handler uses.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from flask import request

from ticketing.auth_service.provider import AuthProviderError, Identity
from ticketing.common.errors import Forbidden, NotFound, Unauthenticated
from ticketing.database.record_store import RecordStore, StoreError
from ticketing.gateway.extensions import get_auth_provider

ADMIN_ROLES = ("admin", "super_admin")

# Only admins (or the system) may set these on a user record
RESTRICTED_USER_FIELDS = ("verification_status", "role", "id_number")


class AccessTier(Enum):
    PUBLIC = "public"
    ADMIN = "admin"
    SELF_OR_ADMIN = "self_or_admin"


# --- AUTHENTICATION ---
def bearer_token_from_request() -> str:
    """
    Extract the bearer token from the Authorization header.

    Raises:
        Unauthenticated: Header missing or not of the form "Bearer <token>".
    """
    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        raise Unauthenticated("Missing or invalid authorization header")

    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Missing or invalid authorization header")
    return token


def authenticate() -> Identity:
    """
    Verify the caller's bearer token with the auth provider.

    Returns:
        Identity: The caller's provider identity.

    Raises:
        Unauthenticated: Missing, malformed, invalid or expired token.
    """
    token = bearer_token_from_request()
    try:
        return get_auth_provider().verify_token(token)
    except AuthProviderError:
        raise Unauthenticated("Invalid or expired token")


def optional_identity() -> Optional[Identity]:
    """
    Like authenticate(), but anonymous callers get None.

    A header that is present but invalid still fails with 401.
    """
    if not request.headers.get("Authorization"):
        return None
    return authenticate()


# --- AUTHORIZATION ---
def is_admin(profile: Optional[Dict[str, Any]]) -> bool:
    return bool(profile) and profile.get("role") in ADMIN_ROLES


def find_profile(store: RecordStore, identity: Identity) -> Optional[Dict[str, Any]]:
    """Return the users row linked to identity, or None when the lookup fails."""
    try:
        return store.table("users").select().eq("auth_id", identity.id).single()
    except StoreError as e:
        logging.info(f"[Auth] No profile for auth_id={identity.id}: {e}")
        return None


def authorize(
    store: RecordStore,
    identity: Optional[Identity],
    tier: AccessTier,
    owner_id: Any = None,
) -> Optional[Dict[str, Any]]:
    """
    Apply the access policy for one operation.

    Args:
        store (RecordStore): Where the caller's user record lives.
        identity (Identity): The authenticated caller (None for public access).
        tier (AccessTier): Required access tier.
        owner_id: user_id of the record being acted on. None means the
            caller is acting on their own record.

    Returns:
        dict: The caller's user record (None for public access).

    Raises:
        Forbidden: Role or ownership check failed.
        NotFound: A caller acting on their own record has no profile.
    """
    if tier is AccessTier.PUBLIC:
        return None

    profile = find_profile(store, identity)

    if tier is AccessTier.ADMIN:
        if not is_admin(profile):
            raise Forbidden("Unauthorized. Admin access required.")
        return profile

    if not profile:
        if owner_id is None:
            raise NotFound("User profile not found")
        raise Forbidden("Unauthorized access")

    if owner_id is not None and str(profile["user_id"]) != str(owner_id) and not is_admin(profile):
        raise Forbidden("Unauthorized access to user data")

    return profile


def restrict_self_update(patch: Dict[str, Any], profile: Dict[str, Any],
                         restricted: Iterable[str] = RESTRICTED_USER_FIELDS) -> Dict[str, Any]:
    """
    Strip admin-only fields from a patch when the caller is not an admin.

    Dropped silently, whether or not the caller tried to set them.
    """
    if is_admin(profile):
        return dict(patch)
    return {k: v for k, v in patch.items() if k not in restricted}
