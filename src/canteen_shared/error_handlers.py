"""
Centralized error handlers for the Flask application.

Every failure leaves as the JSON error envelope; services raise
``ServiceError`` subclasses that already know their HTTP status.
"""

from http import HTTPStatus

from flask import Flask, jsonify
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from canteen_shared.errors import OrderStateError, ServiceError
from canteen_shared.logging_config import get_logger
from canteen_shared.serializers import error_response

logger = get_logger(__name__)


def register_error_handlers(app: Flask) -> None:
    """
    Register centralized error handlers for the Flask app.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(ServiceError)
    def handle_service_error(e: ServiceError):
        if e.status >= HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error("Service error: %s", e.message, exc_info=True)
        else:
            logger.warning("%s: %s", type(e).__name__, e.message)
        details = None
        if isinstance(e, OrderStateError) and e.current is not None:
            details = {
                "current_status": e.current.value,
                "target_status": e.target.value if e.target is not None else None,
            }
        return jsonify(error_response(e.message, details)), e.status

    @app.errorhandler(PydanticValidationError)
    def handle_pydantic_validation_error(e: PydanticValidationError):
        logger.warning("Request validation error: %s", e)
        return jsonify(
            error_response(
                "Invalid request data",
                {"details": e.errors(include_url=False, include_context=False, include_input=False)},
            )
        ), HTTPStatus.BAD_REQUEST

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e: SQLAlchemyError):
        logger.error("Database error: %s", e, exc_info=True)
        return jsonify(error_response("Database error")), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        logger.warning("HTTP exception %s: %s", e.code, e.description)
        return jsonify(error_response(e.description or str(e))), e.code

    @app.errorhandler(Exception)
    def handle_generic_exception(e: Exception):
        logger.error("Unhandled exception: %s", e, exc_info=True)
        return jsonify(error_response("Internal server error")), HTTPStatus.INTERNAL_SERVER_ERROR
