"""
Shared authentication helpers.
Provides token creation, verification of the Authorization header and
request body parsing.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Tuple

import jwt
from flask import current_app, request

from virtual_events.errors import AuthError, ValidationError

JWT_ALGORITHM = "HS256"


def _secret() -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET is missing. Set it in .env")
    return secret


# --- JWT CREATION ---
def create_token(user_id: int, role: str) -> str:
    """
    Generates a new JWT for a given user.

    The token expires after TOKEN_EXPIRATION_MINUTES; a value of 0 issues a
    token without an `exp` claim.

    Args:
        user_id (int): The unique ID of the user.
        role (str): The role of the user (admin, organizer, attendee).

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
    }

    lifetime = int(current_app.config.get("TOKEN_EXPIRATION_MINUTES", 0))
    if lifetime > 0:
        payload["exp"] = now + timedelta(minutes=lifetime)

    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)


# --- JWT VALIDATION ---
def decode_token(token: str) -> Tuple[int, str]:
    """
    Validate a JWT and return (user_id, role).

    Raises:
        AuthError: The token is expired, badly signed or malformed.
    """
    try:
        payload = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthError("Invalid or expired token")

    return user_id, payload.get("role", "attendee")


def verify_token_from_request() -> Tuple[int, str]:
    """
    Verify the JWT in the Authorization header.

    Returns:
        tuple: (user_id, role)

    Raises:
        AuthError: Header missing, not a Bearer token, or token invalid.
    """
    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")

    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Missing or invalid Authorization header")

    return decode_token(token)



def json_body() -> Dict[str, Any]:
    """
    Return the request's JSON object, or {} when there is no JSON body.

    Raises:
        ValidationError: The body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
