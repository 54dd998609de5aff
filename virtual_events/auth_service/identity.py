"""
User registration and login.

Passwords are hashed with Argon2; only the hash is stored. Returned user
dicts never contain the hash.
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from virtual_events.auth_service.utils import create_token
from virtual_events.errors import (
    ConflictError,
    DuplicateKeyError,
    InvalidCredentialsError,
    ValidationError,
)

ph = PasswordHasher()

# --- CONSTANTS FOR VALIDATION ---
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 15
PASSWORD_MIN_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_registration(data: Dict[str, Any]) -> Tuple[str, str, str, str]:
    """
    Check the registration payload and normalise it.

    Returns:
        tuple: (name, username, email, password) with username and email
        lower-cased.

    Raises:
        ValidationError: One or more fields are missing or out of range.
    """
    name = _clean(data.get("name"))
    username = _clean(data.get("username")).lower()
    email = _clean(data.get("email")).lower()
    password = data.get("password") if isinstance(data.get("password"), str) else ""

    errors: List[Dict[str, str]] = []
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        errors.append({
            "field": "name",
            "message": f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters long",
        })
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        errors.append({
            "field": "username",
            "message": f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters long",
        })
    if not EMAIL_PATTERN.match(email):
        errors.append({"field": "email", "message": "Invalid email address"})
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append({
            "field": "password",
            "message": f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
        })

    if errors:
        raise ValidationError("Invalid registration data", errors)

    return name, username, email, password


def register_user(store, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a user account.

    Raises:
        ValidationError: Invalid payload.
        ConflictError: Email or username already in use.
    """
    name, username, email, password = validate_registration(data)

    if store.find_user_by_email_or_username(email, username):
        raise ConflictError("Email or username already in use")

    pw_hash = ph.hash(password)

    try:
        user = store.insert_user(name, username, email, pw_hash)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration for the same identity.
        raise ConflictError("Email or username already in use")

    logging.info(f"[Auth] Registered user {user['user_id']}")
    return user


def login_user(store, email: Any, password: Any) -> Tuple[str, Dict[str, Any]]:
    """
    Check credentials and issue a token.

    Returns:
        tuple: (token, user) where user excludes the password hash.

    Raises:
        ValidationError: Email or password missing.
        InvalidCredentialsError: Unknown email or wrong password.
    """
    email = _clean(email).lower()
    if not email or not isinstance(password, str) or not password:
        raise ValidationError("Email and password required")

    user = store.find_user_by_email(email)
    if not user:
        raise InvalidCredentialsError("Invalid credentials")

    try:
        ph.verify(user["password_hash"], password)
    except (VerificationError, InvalidHashError):
        raise InvalidCredentialsError("Invalid credentials")

    user = {k: v for k, v in user.items() if k != "password_hash"}
    token = create_token(user["user_id"], user["role"])
    return token, user
