"""
Custom exception classes for the marketing portal with standardized error handling.
"""

import logging
from pyramid.httpexceptions import HTTPException
from datetime import datetime

log = logging.getLogger(__name__)


class PortalException(Exception):
    """Base exception for all portal-related errors"""

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or 'PORTAL_ERROR'
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self):
        """Convert exception to dictionary for error pages"""
        return {
            'error': True,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }

    def log_error(self):
        log.error(f"[{self.error_code}] {self.message}", extra={'details': self.details})


class ValidationError(PortalException):
    """Validation error for submitted form data"""

    def __init__(self, message: str, fields: dict = None):
        details = {'fields': fields} if fields else {}
        super().__init__(message, 'VALIDATION_ERROR', details)


class AuthenticationError(PortalException):
    """Sign-in failures shown on the login page"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, 'AUTH_ERROR')


class ConfigurationError(PortalException):
    """Configuration-related errors"""

    def __init__(self, message: str, config_key: str = None):
        details = {'config_key': config_key} if config_key else {}
        super().__init__(message, 'CONFIG_ERROR', details)


class SessionStoreError(PortalException):
    """Persisted session could not be read or written"""

    def __init__(self, message: str, operation: str = None):
        details = {'operation': operation} if operation else {}
        super().__init__(message, 'SESSION_STORE_ERROR', details)


class HandoffError(PortalException):
    """Single sign-on hand-off could not be prepared"""

    def __init__(self, message: str):
        super().__init__(message, 'HANDOFF_ERROR')


ERROR_CODE_HTTP_MAPPING = {
    'VALIDATION_ERROR': 400,
    'AUTH_ERROR': 401,
    'HANDOFF_ERROR': 502,
    'CONFIG_ERROR': 500,
    'SESSION_STORE_ERROR': 500,
    'PORTAL_ERROR': 500
}


def get_http_status_for_error(error_code: str) -> int:
    """Get appropriate HTTP status code for error code"""
    return ERROR_CODE_HTTP_MAPPING.get(error_code, 500)


class ErrorHandler:
    """Centralized error handler for the application"""

    @staticmethod
    def handle_exception(exc: Exception) -> dict:
        """Turn any exception into the dict rendered by the error page"""

        if isinstance(exc, PortalException):
            exc.log_error()
            return exc.to_dict()

        elif isinstance(exc, HTTPException):
            log.warning(f"HTTP Exception {exc.status_int}: {exc.detail}")
            return {
                'error': True,
                'error_code': f'HTTP_{exc.status_int}',
                'message': exc.detail or exc.title,
                'details': {},
                'timestamp': datetime.now().isoformat()
            }

        else:
            log.exception(f"Unexpected error: {str(exc)}")
            return {
                'error': True,
                'error_code': 'INTERNAL_ERROR',
                'message': 'An unexpected error occurred',
                'details': {'exception_type': type(exc).__name__},
                'timestamp': datetime.now().isoformat()
            }

    @staticmethod
    def create_error_response(request, exc: Exception):
        """Set the response status for exc and return the template context"""
        error_dict = ErrorHandler.handle_exception(exc)

        if isinstance(exc, PortalException):
            status_code = get_http_status_for_error(exc.error_code)
        elif isinstance(exc, HTTPException):
            status_code = exc.status_int
        else:
            status_code = 500

        request.response.status = status_code
        return error_dict
