"""
Events service routes: create, read, list, update and delete events.

Reads are public. Every write requires an admin or super_admin caller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, request, Response

from ticketing.auth_service.utils import AccessTier, authenticate, authorize
from ticketing.common.errors import MethodNotAllowed, NotFound, ValidationError
from ticketing.common.responses import success, upstream_errors
from ticketing.common.validation import (
    build_patch,
    json_body,
    parse_dt,
    parse_sort,
    require_fields,
    require_param,
)
from ticketing.database.record_store import RecordNotFound, RecordStore, StoreError
from ticketing.gateway.extensions import get_record_store

events_bp = Blueprint("events", __name__)

# --- CONSTANTS FOR VALIDATION ---
EVENT_COLUMNS = (
    "event_id", "event_name", "event_date", "venue",
    "event_description", "event_image_url", "category", "created_at",
)
REQUIRED_EVENT_FIELDS = ("event_name", "event_date", "venue")
OPTIONAL_EVENT_FIELDS = ("event_description", "event_image_url", "category")
UPDATABLE_EVENT_FIELDS = REQUIRED_EVENT_FIELDS + OPTIONAL_EVENT_FIELDS


# --- REQUEST LOGGING ---
@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")
    # Flask adds HEAD to GET rules; each handler answers only its own method
    if request.method == "HEAD":
        raise MethodNotAllowed()


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


def ticket_availability(store: RecordStore, event_id: Any) -> Optional[Dict[str, int]]:
    """
    Summarise the tickets issued for an event.

    Returns:
        dict: total/available/sold/revoked counts, or None when the ticket
        lookup fails (the event itself is still returned).
    """
    try:
        tickets = (
            store.table("tickets")
            .select("ticket_id", "ticket_status")
            .eq("event_id", event_id)
            .execute()
            .data
        )
    except StoreError as e:
        logging.warning(f"[Events] Ticket lookup failed for event {event_id}: {e}")
        return None

    return {
        "total_tickets": len(tickets),
        "available_tickets": sum(1 for t in tickets if t.get("ticket_status") == "valid"),
        "sold_tickets": len(tickets),
        "revoked_tickets": sum(1 for t in tickets if t.get("ticket_status") == "revoked"),
    }


# --- CREATE ---
@events_bp.route("/create", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event.

    Expects a JSON body with:
    - event_name (str)
    - event_date (str): ISO-8601, strictly in the future. Stored as a
      UTC timestamp with an explicit offset; a value without an offset
      is read as UTC, not in the database session time zone.
    - venue (str)
    - event_description, event_image_url, category (optional)

    Returns:
        201: The created event.
        400: Missing fields, invalid or past date.
        401/403: Authentication or role failure.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    authorize(store, identity, AccessTier.ADMIN)

    data = json_body()
    require_fields(data, REQUIRED_EVENT_FIELDS)

    event_date = parse_dt(data["event_date"])
    if not event_date:
        raise ValidationError("Invalid date format")
    if event_date <= datetime.now(timezone.utc):
        raise ValidationError("Event date must be in the future")

    row = {
        "event_name": data["event_name"],
        "event_date": event_date.isoformat(),
        "venue": data["venue"],
    }
    row.update(build_patch(data, OPTIONAL_EVENT_FIELDS))

    with upstream_errors("An error occurred while creating the event"):
        new_event = store.table("events").insert(row)

    logging.info(f"[Events] Created event {new_event.get('event_id')} by {identity.id}")
    return success("Event created successfully", new_event, 201)


# --- READ ---
@events_bp.route("/get", methods=["GET"])
def get_event() -> Tuple[Response, int]:
    """
    Get a single event by ?event_id, with ticket availability.

    Returns:
        200: Event object plus "availability" (null if tickets could not be read).
        400: Missing event_id.
        404: Event not found.
        500: Record store error.
    """
    event_id = require_param(request.args, "event_id")
    store = get_record_store()

    with upstream_errors("An error occurred while fetching the event"):
        try:
            event = store.table("events").select().eq("event_id", event_id).single()
        except RecordNotFound:
            raise NotFound("Event not found")

    event["availability"] = ticket_availability(store, event_id)
    return success("Event retrieved successfully", event)


@events_bp.route("/list", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    List events.

    Query parameters:
    - upcoming=true : only events dated now or later.
    - past=true     : only events dated before now (ignored if upcoming is set).
    - category      : exact match.
    - sort          : column to order by (default event_date).
    - order         : "asc" (default) or "desc".

    Returns:
        200: List of events.
        400: Unknown sort column.
        500: Record store error.
    """
    args = request.args
    sort = parse_sort(args.get("sort"), EVENT_COLUMNS, default="event_date")
    ascending = args.get("order", "asc") == "asc"

    store = get_record_store()
    query = store.table("events").select()

    now = datetime.now(timezone.utc).isoformat()
    if args.get("upcoming") == "true":
        query = query.gte("event_date", now)
    elif args.get("past") == "true":
        query = query.lt("event_date", now)

    if args.get("category"):
        query = query.eq("category", args["category"])

    with upstream_errors("An error occurred while fetching events"):
        events = query.order(sort, ascending=ascending).execute().data

    return success("Events retrieved successfully", events)


# --- UPDATE ---
@events_bp.route("/update", methods=["PUT"])
def update_event() -> Tuple[Response, int]:
    """
    Update an event. Only fields present in the body change.

    Expects a JSON body with event_id plus any of:
    event_name, event_date, venue, event_description, event_image_url, category.
    A new event_date is normalised to UTC the same way as on create.

    Returns:
        200: The updated event.
        400: Missing event_id, invalid date, or nothing to update.
        401/403: Authentication or role failure.
        404: Event not found.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    authorize(store, identity, AccessTier.ADMIN)

    data = json_body()
    require_fields(data, ("event_id",))
    event_id = data["event_id"]

    message = "An error occurred while updating the event"
    with upstream_errors(message):
        try:
            store.table("events").select("event_id").eq("event_id", event_id).single()
        except RecordNotFound:
            raise NotFound("Event not found")

    patch = build_patch(data, UPDATABLE_EVENT_FIELDS)
    if "event_date" in patch:
        event_date = parse_dt(patch["event_date"])
        if not event_date:
            raise ValidationError("Invalid date format")
        patch["event_date"] = event_date.isoformat()

    if not patch:
        raise ValidationError("No valid fields to update")

    with upstream_errors(message):
        updated = store.table("events").eq("event_id", event_id).update(patch)

    if not updated:
        raise NotFound("Event not found")

    return success("Event updated successfully", updated[0])


# --- DELETE ---
@events_bp.route("/delete", methods=["DELETE"])
def delete_event() -> Tuple[Response, int]:
    """
    Delete an event by ?event_id.

    Blocked while any ticket references the event. The ticket check and
    the delete are separate calls, so a ticket issued in between is not
    seen.

    Returns:
        200: Deleted.
        400: Missing event_id, or the event has tickets.
        401/403: Authentication or role failure.
        404: Event not found.
        500: Record store error.
    """
    identity = authenticate()
    store = get_record_store()
    authorize(store, identity, AccessTier.ADMIN)

    event_id = require_param(request.args, "event_id")

    message = "An error occurred while deleting the event"
    with upstream_errors(message):
        try:
            store.table("events").select("event_id").eq("event_id", event_id).single()
        except RecordNotFound:
            raise NotFound("Event not found")

    try:
        tickets = store.table("tickets").select("ticket_id").eq("event_id", event_id).limit(1).execute().data
    except StoreError as e:
        logging.warning(f"[Events] Ticket check failed for event {event_id}: {e}")
        tickets = []

    if tickets:
        raise ValidationError("Cannot delete event with existing tickets. Please handle tickets first.")

    with upstream_errors(message):
        store.table("events").eq("event_id", event_id).delete()

    logging.info(f"[Events] Deleted event {event_id} by {identity.id}")
    return success("Event deleted successfully")
