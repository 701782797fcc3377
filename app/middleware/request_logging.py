"""
Request Logging Middleware: record failed and slow requests.

Logs to stdout (JSON in production via configure_logging). Never blocks or
alters a request.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import logging
import time
import json
from typing import Dict

logger = logging.getLogger("requests")

# Requests slower than this are logged (POS syncs are the usual culprits)
SLOW_REQUEST_THRESHOLD = 10.0  # seconds


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log responses with status >= 400, slow requests and unhandled errors."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        context = self._build_context(request)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            self._log_error_request(context, str(e), duration)
            raise

        duration = time.time() - start_time
        if duration > SLOW_REQUEST_THRESHOLD:
            self._log_slow_request(context, duration)
        if response.status_code >= 400:
            self._log_failed_request(context, response.status_code, duration)
        return response

    def _build_context(self, request: Request) -> Dict:
        return {
            'method': request.method,
            'path': request.url.path,
            'query': str(request.url.query) if request.url.query else None,
            'client_ip': request.client.host if request.client else 'unknown',
            'user_agent': request.headers.get('user-agent', 'unknown')[:200],
        }

    def _log_slow_request(self, context: Dict, duration: float):
        log_entry = {'event_type': 'slow_request', 'duration_seconds': round(duration, 2), **context}
        logger.warning(f"SLOW REQUEST ({duration:.2f}s): {json.dumps(log_entry)}")

    def _log_failed_request(self, context: Dict, status_code: int, duration: float):
        log_entry = {
            'event_type': 'failed_request',
            'status_code': status_code,
            'duration_seconds': round(duration, 2),
            **context
        }

        if status_code >= 500:
            logger.error(f"SERVER ERROR ({status_code}): {json.dumps(log_entry)}")
        elif status_code == 429:
            logger.warning(f"RATE LIMITED: {json.dumps(log_entry)}")
        elif status_code in [401, 403]:
            logger.warning(f"UNAUTHORIZED ({status_code}): {json.dumps(log_entry)}")
        else:
            logger.info(f"CLIENT ERROR ({status_code}): {json.dumps(log_entry)}")

    def _log_error_request(self, context: Dict, error: str, duration: float):
        log_entry = {
            'event_type': 'error_request',
            'error': error[:500],
            'duration_seconds': round(duration, 2),
            **context
        }
        logger.error(f"REQUEST ERROR: {json.dumps(log_entry)}")
