"""
Users service route handlers.

Provides routes for:
- Registration (public)
- Login (public, delegated to Supabase Auth)
- Profile retrieval (self, or any user for admins)
- Profile update (self with a restricted field set, or admins)
- Admin user listing with filters and pagination
- Admin verification decisions

Token checks and the role policy live in `auth_service.utils`.
"""

import logging
from typing import Tuple

from flask import Blueprint, request, Response

from ticketing.auth_service.provider import AuthProviderError
from ticketing.auth_service.utils import (
    RESTRICTED_USER_FIELDS,
    AccessTier,
    authenticate,
    authorize,
    find_profile,
    is_admin,
    optional_identity,
    restrict_self_update,
)
from ticketing.common.errors import (
    Conflict,
    MethodNotAllowed,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from ticketing.common.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, Page
from ticketing.common.responses import success, upstream_errors
from ticketing.common.validation import (
    build_patch,
    json_body,
    parse_positive_int,
    parse_sort,
    require_choice,
    require_fields,
)
from ticketing.database.record_store import DuplicateRecord, RecordNotFound
from ticketing.gateway.extensions import get_auth_provider, get_record_store

users_bp = Blueprint("users", __name__)

USER_COLUMNS = (
    "user_id", "auth_id", "id_number", "id_name", "dob", "id_picture_url",
    "verification_status", "role", "created_at",
)
REGISTRATION_FIELDS = ("id_number", "id_name", "dob", "id_picture_url")
SELF_EDITABLE_FIELDS = ("id_name", "dob", "id_picture_url")
VERIFICATION_STATUSES = ("pending", "approved", "rejected")
VERIFICATION_DECISIONS = ("approved", "rejected")
ROLES = ("user", "admin", "super_admin")


# --- REQUEST LOGGING ---
@users_bp.before_request
def before_request() -> None:
    # Headers are not logged: they carry bearer tokens
    logging.info(f"[Users] Incoming {request.method} {request.path}")
    if request.method == "HEAD":
        raise MethodNotAllowed()


@users_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Users] Response {response.status}")
    return response


# --- REGISTER ---
@users_bp.route("/add", methods=["POST"])
def add_user() -> Tuple[Response, int]:
    """
    Register a new user record.

    Expects a JSON body with:
    - id_number (str): ID document number, unique across users.
    - id_name (str)
    - dob (str)
    - id_picture_url (str)

    A valid bearer token is optional; when given, the record is linked to
    the caller's auth identity.

    Returns:
        201: The created user (verification_status "pending", role "user").
        400: Missing fields.
        401: Authorization header present but invalid.
        409: ID number (or auth identity) already registered.
        500: Record store error.
    """
    identity = optional_identity()

    data = json_body()
    require_fields(data, REGISTRATION_FIELDS)

    store = get_record_store()
    message = "An error occurred while creating the user"

    with upstream_errors(message):
        existing = store.table("users").select("id_number").eq("id_number", data["id_number"]).execute().data
    if existing:
        raise Conflict("User with this ID number already exists")

    row = {name: data[name] for name in REGISTRATION_FIELDS}
    row.update({"verification_status": "pending", "role": "user"})

    if identity:
        if find_profile(store, identity):
            raise Conflict("A user profile already exists for this account")
        row["auth_id"] = identity.id

    with upstream_errors(message):
        try:
            new_user = store.table("users").insert(row)
        except DuplicateRecord:
            raise Conflict("User with this ID number already exists")

    return success("User created successfully", new_user, 201)


# --- LOGIN ---
@users_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Sign in with email and password.

    Returns:
        200: {user, session, profile}. profile is null when the account has
             no user record yet.
        400: Missing credentials.
        401: Rejected by the auth provider.
    """
    data = json_body()
    require_fields(data, ("email", "password"))

    try:
        result = get_auth_provider().sign_in(data["email"], data["password"])
    except AuthProviderError:
        raise Unauthenticated("Invalid email or password")

    profile = find_profile(get_record_store(), result.identity)
    if profile is None:
        logging.info(f"[Users] Login for {result.identity.id} has no user profile yet")

    return success("Login successful", {
        "user": result.user,
        "session": result.session,
        "profile": profile,
    })


# --- GET USER ---
@users_bp.route("/get", methods=["GET"])
def get_user() -> Tuple[Response, int]:
    """
    Retrieve a user profile.

    Without ?user_id the caller's own profile is returned. Any other
    user_id requires the caller to own it or be an admin.

    Returns:
        200: User profile.
        401: Authentication failure.
        403: Not the owner and not an admin.
        404: Profile not found.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    user_id = request.args.get("user_id") or None

    profile = authorize(store, identity, AccessTier.SELF_OR_ADMIN, owner_id=user_id)
    if user_id is None:
        return success("User profile retrieved successfully", profile)

    with upstream_errors("An error occurred while fetching user data"):
        try:
            user = store.table("users").select().eq("user_id", user_id).single()
        except RecordNotFound:
            raise NotFound("User not found")

    return success("User profile retrieved successfully", user)


# --- LIST USERS (ADMIN ONLY) ---
@users_bp.route("/list", methods=["GET"])
def list_users() -> Tuple[Response, int]:
    """
    Admin-only endpoint to list users.

    Query parameters:
    - verification_status, role : exact-match filters.
    - sort  : column to order by (default created_at).
    - order : "asc" or "desc" (default).
    - page  : 1-based page number (default 1).
    - limit : page size (default 50).

    Returns:
        200: {users, pagination}
        400: Invalid page, limit or sort column.
        401/403: Authentication or role failure.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    authorize(store, identity, AccessTier.ADMIN)

    args = request.args
    sort = parse_sort(args.get("sort"), USER_COLUMNS, default="created_at")
    ascending = args.get("order", "desc") == "asc"
    page = Page(
        page=parse_positive_int(args.get("page"), "page", DEFAULT_PAGE),
        limit=parse_positive_int(args.get("limit"), "limit", DEFAULT_LIMIT),
    )

    query = store.table("users").select(count=True)
    for column in ("verification_status", "role"):
        if args.get(column):
            query = query.eq(column, args[column])

    with upstream_errors("An error occurred while fetching users"):
        result = query.order(sort, ascending=ascending).range(page.offset, page.last_index).execute()

    return success("Users retrieved successfully", {
        "users": result.data,
        "pagination": page.summary(result.count),
    })


# --- UPDATE USER ---
@users_bp.route("/update", methods=["PUT"])
def update_user() -> Tuple[Response, int]:
    """
    Update a user profile. Only fields present in the body change.

    Regular users may change id_name, dob and id_picture_url on their own
    record; verification_status, role and id_number are dropped from their
    patch. Admins may update any user, including those three fields.

    Returns:
        200: The updated user.
        400: Nothing to update, or an invalid role/status value.
        401: Authentication failure.
        403: Not the owner and not an admin.
        404: Caller's profile or target user not found.
        409: id_number already in use.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()

    data = json_body()
    owner_id = data.get("user_id") or None

    profile = authorize(store, identity, AccessTier.SELF_OR_ADMIN, owner_id=owner_id)
    target_id = owner_id or profile["user_id"]

    patch = build_patch(data, SELF_EDITABLE_FIELDS + RESTRICTED_USER_FIELDS)
    patch = restrict_self_update(patch, profile)

    if is_admin(profile):
        if "verification_status" in patch:
            require_choice(patch["verification_status"], VERIFICATION_STATUSES, "verification_status")
        if "role" in patch:
            require_choice(patch["role"], ROLES, "role")

    if not patch:
        raise ValidationError("No valid fields to update")

    with upstream_errors("An error occurred while updating user data"):
        try:
            updated = store.table("users").eq("user_id", target_id).update(patch)
        except DuplicateRecord:
            raise Conflict("User with this ID number already exists")

    if not updated:
        raise NotFound("User not found")

    return success("User updated successfully", updated[0])


# --- VERIFY USER (ADMIN ONLY) ---
@users_bp.route("/verify", methods=["POST"])
def verify_user() -> Tuple[Response, int]:
    """
    Record an admin's verification decision for a user.

    Expects JSON: { "user_id": ..., "status": "approved" | "rejected", "comments": str }

    Two writes are issued in order: the user's verification_status, then
    an admin_verification_requests record. They are not atomic. If the
    second write fails the status change stays persisted and the caller
    gets a 500.

    Returns:
        200: {user, verification}
        400: Missing fields or invalid status.
        401/403: Authentication or role failure.
        404: User not found.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    authorize(store, identity, AccessTier.ADMIN)

    data = json_body()
    require_fields(data, ("user_id", "status", "comments"))
    require_choice(data["status"], VERIFICATION_DECISIONS, "status")

    user_id = data["user_id"]
    status = data["status"]
    message = "An error occurred while verifying the user"

    with upstream_errors(message):
        updated = store.table("users").eq("user_id", user_id).update({"verification_status": status})
    if not updated:
        raise NotFound("User not found")

    with upstream_errors(message):
        verification = store.table("admin_verification_requests").insert({
            "user_id": user_id,
            "admin_id": identity.id,
            "status": status,
            "comments": data["comments"],
        })

    logging.info(f"[Users] User {user_id} marked {status} by {identity.id}")
    return success("User verification completed", {
        "user": updated[0],
        "verification": verification,
    })
