# ==================== ERRORS ====================

import logging

from flask import jsonify
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Base class for errors surfaced to API clients as {message, error}"""
    status_code = 500
    error = 'Internal Server Error'

    def __init__(self, message, current_status=None):
        super().__init__(message)
        self.message = message
        self.current_status = current_status

    def to_dict(self):
        body = {'message': self.message, 'error': self.error}
        if self.current_status is not None:
            body['currentStatus'] = str(self.current_status)
        return body


class NotFoundError(DispatchError):
    status_code = 404
    error = 'Not Found'


class ValidationError(DispatchError):
    """Illegal transition, missing field or broken business rule"""
    status_code = 400
    error = 'Bad Request'


class UnauthorizedError(DispatchError):
    status_code = 401
    error = 'Unauthorized'


class ForbiddenError(DispatchError):
    status_code = 403
    error = 'Forbidden'


class ConflictError(DispatchError):
    status_code = 409
    error = 'Conflict'


def register_error_handlers(app):
    from .extensions import db

    @app.errorhandler(DispatchError)
    def handle_dispatch_error(error):
        return error.to_dict(), error.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_body_validation(error):
        details = [
            {'field': '.'.join(str(part) for part in err['loc']), 'message': err['msg']}
            for err in error.errors()
        ]
        return {'message': 'Invalid request body', 'error': 'Bad Request', 'details': details}, 400

    @app.errorhandler(404)
    def not_found(error):
        return {'message': 'Endpoint not found', 'error': 'Not Found'}, 404

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'message': error.description, 'error': error.name}), error.code
        db.session.rollback()
        logger.exception(f"Internal server error: {str(error)}")
        return {'message': 'Internal server error', 'error': 'Internal Server Error'}, 500
