"""
Authentication service route handlers.

Provides routes for:
- User registration
- User login
- Profile retrieval (/me)

Validation, hashing and token logic live in `auth_service.identity` and
`auth_service.utils`; errors propagate to the gateway's error handlers.
"""

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, jsonify, request

from virtual_events.auth_service.identity import login_user, register_user
from virtual_events.auth_service.utils import json_body, verify_token_from_request
from virtual_events.database.db_connection import get_store
from virtual_events.errors import AuthError
from virtual_events.serializers import serialize_user

users_bp = Blueprint("users", __name__)


# --- REQUEST LOGGING ---
@users_bp.before_request
def before_request() -> None:
    """Log every incoming request to the authentication service."""
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@users_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- REGISTER ---
@users_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user in the system.

    Expects a JSON body with:
    - name (str): 2-100 characters.
    - username (str): Unique, 3-15 characters.
    - email (str): Unique email address.
    - password (str): Minimum 6 characters.

    Returns:
        201: Acknowledgement with the created user (no password fields).
        400: Invalid input, or email/username already in use.
        500: Server-side error.
    """
    data: Dict[str, Any] = json_body()

    user = register_user(get_store(), data)

    return jsonify({
        "message": "User registered successfully",
        "user": serialize_user(user),
    }), 201


# --- LOGIN ---
@users_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and return a JWT.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: JSON with token and user.
        400: Missing or invalid credentials.
        500: Database error.
    """
    data: Dict[str, Any] = json_body()

    token, user = login_user(get_store(), data.get("email"), data.get("password"))

    return jsonify({"token": token, "user": serialize_user(user)}), 200


# --- GET CURRENT USER ---
@users_bp.route("/me", methods=["GET"])
def get_current_user() -> Tuple[Response, int]:
    """
    Retrieve the authenticated user's profile.

    Requires Authorization header: Bearer <token>

    Returns:
        200: User profile object.
        401: Authentication failure or the account no longer exists.
    """
    user_id, _ = verify_token_from_request()

    user = get_store().get_user(user_id)
    if not user:
        raise AuthError("User no longer exists")

    return jsonify(serialize_user(user)), 200
