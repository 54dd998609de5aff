"""
Error taxonomy shared by every service.

Each error carries the HTTP status it maps to, so route handlers can simply
raise and let the handlers registered in `register_error_handlers` render
the JSON body.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
import psycopg2.errors
from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for errors that are surfaced to the client verbatim."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(ApiError):
    """Malformed or out-of-range input. Carries field-level detail."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.details = details or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class ConflictError(ApiError):
    status_code = 400


class AuthError(ApiError):
    status_code = 401


class InvalidCredentialsError(AuthError):
    # Login failures are reported as a plain bad request.
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConcurrencyLossError(ApiError):
    """
    Registration was rejected by the atomic eligibility check.

    `reason` is one of REASONS and tells the client which predicate failed.
    """

    status_code = 400

    NOT_OPEN = "not_open"
    DEADLINE_PASSED = "deadline_passed"
    FULL = "full"
    INELIGIBLE = "ineligible"
    REASONS = (NOT_OPEN, DEADLINE_PASSED, FULL, INELIGIBLE)

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["reason"] = self.reason
        return body


class StorageError(ApiError):
    status_code = 500


class DuplicateKeyError(StorageError):
    """A unique index rejected the write."""


def translate_db_error(exc: psycopg2.Error) -> StorageError:
    """Map a psycopg2 error to the storage taxonomy."""
    if isinstance(exc, psycopg2.errors.UniqueViolation):
        constraint = getattr(getattr(exc, "diag", None), "constraint_name", None)
        return DuplicateKeyError(f"Duplicate key ({constraint or 'unique constraint'})")
    return StorageError("Database operation failed")


def register_error_handlers(app: Flask) -> None:
    """Render ApiError subclasses as JSON; anything else becomes a 500."""

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError) -> Tuple[Response, int]:
        if exc.status_code >= 500:
            logging.error(f"[Gateway] {type(exc).__name__}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException) -> Tuple[Response, int]:
        return jsonify({"error": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception) -> Tuple[Response, int]:
        logging.exception(f"[Gateway] Unhandled error: {exc}")
        return jsonify({"error": "Internal server error"}), 500
