"""API error taxonomy rendered as ``{"error": ..., "message": ...}`` bodies."""
from __future__ import annotations

from flask import Flask, jsonify

from .extensions import db


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code = 500
    error = "server_error"

    def __init__(self, message: str, *, error: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class ValidationError(ApiError):
    status_code = 400
    error = "invalid_payload"


class NotFoundError(ApiError):
    status_code = 404
    error = "not_found"


class ConflictError(ApiError):
    status_code = 409
    error = "conflict"


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        # Discard partial writes of the failed request.
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code
