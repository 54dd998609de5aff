"""
Events service routes: create, read, update, delete events, and register.
Handles event lifecycle management and participation.
"""

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, jsonify, request

from virtual_events.auth_service.utils import json_body, verify_token_from_request
from virtual_events.errors import ValidationError
from virtual_events.events_service.lifecycle import get_lifecycle_manager
from virtual_events.events_service.registration import SOURCE_MAX_LENGTH, get_registration_engine
from virtual_events.events_service.validation import parse_id
from virtual_events.serializers import (
    serialize_attendee,
    serialize_event,
    serialize_registration,
)

events_bp = Blueprint("events", __name__)


# --- REQUEST LOGGING ---
@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


@events_bp.route("/", methods=["GET"], strict_slashes=False)
def list_events() -> Tuple[Response, int]:
    """
    Return all events ordered by start time. Public access allowed.

    Returns:
        200: List of event objects.
        500: Database error.
    """
    events = get_lifecycle_manager().list()
    return jsonify([serialize_event(e) for e in events]), 200


@events_bp.route("/create", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event.

    Validations:
    - title and startAt required; field types and ranges.
    - endAt after startAt, registrationDeadline on/before startAt.
    - meetingUrl required unless mode is in-person.

    Returns:
        201: { "message": str, "event": object }
        400: Validation error.
        401: Authentication failure.
    """
    user_id, _ = verify_token_from_request()

    data: Dict[str, Any] = json_body()
    event = get_lifecycle_manager().create(data, created_by=user_id)

    return jsonify({"message": "Event created successfully", "event": serialize_event(event)}), 201


@events_bp.route("/my-registrations", methods=["GET"])
def my_registrations() -> Tuple[Response, int]:
    """
    List the caller's registrations, each with its event embedded.

    Returns:
        200: List of registration objects.
        401: Authentication failure.
    """
    user_id, _ = verify_token_from_request()

    registrations = get_registration_engine().list_registrations_for_user(user_id)
    return jsonify([serialize_registration(r) for r in registrations]), 200


@events_bp.route("/<event_id>", methods=["GET"])
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Get a single event by ID.

    Returns:
        200: Event object.
        400: Malformed id.
        404: Event not found.
    """
    verify_token_from_request()

    event = get_lifecycle_manager().get(parse_id(event_id))
    return jsonify(serialize_event(event)), 200


@events_bp.route("/<event_id>", methods=["PUT"])
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Partially update an event.

    Only whitelisted fields are applied; attendees cannot be edited here.

    Returns:
        200: { "message": str, "event": object }
        400: Validation error or capacity below the attendee count.
        404: Event not found.
    """
    verify_token_from_request()

    data: Dict[str, Any] = json_body()
    if not data:
        raise ValidationError("No update data provided")

    event = get_lifecycle_manager().update(parse_id(event_id), data)
    return jsonify({"message": "Event updated successfully", "event": serialize_event(event)}), 200


@events_bp.route("/<event_id>", methods=["DELETE"])
def delete_event(event_id: str) -> Tuple[Response, int]:
    """
    Delete an event that has no registered attendees.

    Returns:
        200: { "message": str }
        400: Event still has attendees.
        404: Event not found.
    """
    verify_token_from_request()

    get_lifecycle_manager().delete(parse_id(event_id))
    return jsonify({"message": "Event deleted successfully"}), 200


@events_bp.route("/<event_id>/register", methods=["POST"])
def register_for_event(event_id: str) -> Tuple[Response, int]:
    """
    Register the caller for an event.

    Optional JSON body:
    - source (str): Where the registration came from (default "api").
    - metadata (object): Free-form data stored with a new registration.

    Repeating a successful registration returns 200 with the same
    registration and alreadyRegistered=true.

    Returns:
        200: { "message", "registration", "event", "alreadyRegistered" }
        400: Invalid id, event not open, deadline passed or event full.
        401: Authentication failure.
        404: Event not found.
    """
    user_id, _ = verify_token_from_request()
    parsed_id = parse_id(event_id)

    data: Dict[str, Any] = json_body()
    source = data.get("source", "api")
    metadata = data.get("metadata", {})
    if not isinstance(source, str) or not source.strip() or len(source.strip()) > SOURCE_MAX_LENGTH:
        raise ValidationError.for_field("source", f"source must be 1-{SOURCE_MAX_LENGTH} characters long")
    if not isinstance(metadata, dict):
        raise ValidationError.for_field("metadata", "metadata must be an object")

    result = get_registration_engine().register(parsed_id, user_id, source.strip(), metadata)

    return jsonify({
        "message": "Registered successfully" if result.created else "Already registered",
        "registration": serialize_registration(result.registration),
        "event": serialize_event(result.event),
        "alreadyRegistered": not result.created,
    }), 200


@events_bp.route("/<event_id>/attendees", methods=["GET"])
def get_attendees(event_id: str) -> Tuple[Response, int]:
    """
    Get the attendees of an event (id, name and email only).

    Returns:
        200: List of attendee objects.
        404: Event not found.
    """
    verify_token_from_request()

    attendees = get_registration_engine().list_attendees(parse_id(event_id))
    return jsonify([serialize_attendee(a) for a in attendees]), 200
