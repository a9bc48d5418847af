import logging
import secrets
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class HTTPLogMiddleware(BaseHTTPMiddleware):
    """Log each request with a short id, echoed back in ``X-Request-ID``."""

    def __init__(self, app, logger_name: str = "portal.http"):
        super().__init__(app)
        self._logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or secrets.token_hex(4)
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        self._logger.debug("http.request start id=%s method=%s path=%s", request_id, method, path)
        try:
            response: Response = await call_next(request)
        except Exception as e:
            dur_ms = int((time.perf_counter() - start) * 1000)
            self._logger.warning("http.request error id=%s method=%s path=%s dur_ms=%s err=%r",
                                 request_id, method, path, dur_ms, e)
            raise
        dur_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-ID"] = request_id
        self._logger.debug("http.request end id=%s method=%s path=%s status=%s dur_ms=%s",
                           request_id, method, path, response.status_code, dur_ms)
        return response
