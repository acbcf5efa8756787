from flask import jsonify
from sqlalchemy.exc import IntegrityError

from app.extensions import db


class AppError(Exception):
    status_code = 400
    code = "APP_ERROR"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidTransition(AppError):
    """Action attempted against a booking state that does not satisfy its guard."""

    status_code = 409
    code = "INVALID_TRANSITION"


class ConcurrencyConflict(AppError):
    """Optimistic version check failed; the whole action must be re-run."""

    status_code = 409
    code = "CONCURRENCY_CONFLICT"


class AlreadySettled(AppError):
    status_code = 409
    code = "ALREADY_SETTLED"


class AmountOutOfRange(AppError):
    status_code = 422
    code = "AMOUNT_OUT_OF_RANGE"


class BookingClosed(AppError):
    status_code = 409
    code = "BOOKING_CLOSED"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(err):
        db.session.rollback()
        app.logger.warning("Action rejected (%s): %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(_err):
        db.session.rollback()
        app.logger.warning("Database integrity error")
        return jsonify({"error": "Conflict. Resource already exists.", "code": "CONFLICT"}), 409

    @app.errorhandler(400)
    def bad_request(_err):
        return jsonify({"error": "Bad request", "code": "BAD_REQUEST"}), 400

    @app.errorhandler(401)
    def unauthorized(_err):
        return jsonify({"error": "Unauthorized", "code": "UNAUTHORIZED"}), 401

    @app.errorhandler(403)
    def forbidden(_err):
        return jsonify({"error": "Forbidden", "code": "FORBIDDEN"}), 403

    @app.errorhandler(404)
    def not_found(_err):
        return jsonify({"error": "Not found", "code": "NOT_FOUND"}), 404

    @app.errorhandler(429)
    def rate_limited(_err):
        return jsonify({"error": "Too many requests", "code": "RATE_LIMITED"}), 429

    @app.errorhandler(500)
    def server_error(_err):
        app.logger.exception("Internal server error")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
