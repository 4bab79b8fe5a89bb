from typing import Dict, Optional

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException, InternalServerError


class ProductGraphError(InternalServerError):
    """A product exists but its vendor/community joins did not resolve to one record."""

    description = "Product details could not be assembled."


def respond(payload: Optional[Dict] = None, status: int = 200):
    body = {"status": status}
    if payload:
        body.update(payload)
    return jsonify(body), status


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return respond({"message": exc.description}, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_exception(exc: Exception):
        current_app.logger.exception("Unhandled error: %s", exc)
        return respond({"message": "Internal server error."}, 500)
