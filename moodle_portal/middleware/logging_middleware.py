"""
Logging middleware for request/response logging and error tracking.
"""

import time
import uuid
import logging
from urllib.parse import parse_qsl, urlencode

log = logging.getLogger(__name__)

SENSITIVE_HEADERS = {'authorization', 'cookie', 'x-api-key'}
SENSITIVE_PARAMS = {'password', 'wstoken', 'token'}


def _redact_query(query_string):
    pairs = parse_qsl(query_string, keep_blank_values=True)
    return urlencode([(k, '[REDACTED]' if k.lower() in SENSITIVE_PARAMS else v) for k, v in pairs])


class LoggingMiddleware:
    """WSGI middleware logging one line per request, response and failure"""

    def __init__(self, app, config=None):
        self.app = app
        self.config = config or {}
        self.log_requests = str(self.config.get('portal.log_requests', 'true')).lower() == 'true'
        self.slow_request_seconds = float(self.config.get('portal.slow_request_seconds', 2.0))

    def __call__(self, environ, start_response):
        start = time.time()
        request_id = str(uuid.uuid4())[:8]
        environ['REQUEST_ID'] = request_id

        method = environ.get('REQUEST_METHOD', 'UNKNOWN')
        path = environ.get('PATH_INFO', '/')

        if self.log_requests:
            self._log_request(environ, request_id)

        status_holder = {}

        def new_start_response(status, response_headers, exc_info=None):
            status_holder['status'] = status
            return start_response(status, response_headers, exc_info)

        try:
            body = list(self.app(environ, new_start_response))
        except Exception as e:
            duration = time.time() - start
            log.error(f"ERROR [{request_id}] {method} {path} - {type(e).__name__}: {str(e)} "
                      f"({duration * 1000:.2f}ms)", exc_info=True)
            raise

        duration = time.time() - start
        status_code = status_holder.get('status', '000').split()[0]
        if self.log_requests:
            log.info(f"RESPONSE [{request_id}] {status_code} ({duration * 1000:.2f}ms)")
        if duration > self.slow_request_seconds:
            log.warning(f"SLOW REQUEST [{request_id}] {method} {path} took {duration:.2f}s")

        return body

    def _log_request(self, environ, request_id):
        headers = {}
        for key, value in environ.items():
            if key.startswith('HTTP_'):
                name = key[5:].lower().replace('_', '-')
                headers[name] = '[REDACTED]' if name in SENSITIVE_HEADERS else value

        query = _redact_query(environ.get('QUERY_STRING', ''))
        log.info(f"REQUEST [{request_id}] {environ.get('REQUEST_METHOD', 'UNKNOWN')} "
                 f"{environ.get('PATH_INFO', '/')}{'?' + query if query else ''}",
                 extra={'headers': headers, 'remote_addr': environ.get('REMOTE_ADDR', 'unknown')})
