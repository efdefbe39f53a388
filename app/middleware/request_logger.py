import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.core.config import settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id and logs the ones worth looking at.

    - the id comes from the caller's X-Request-ID when present and is echoed back
    - requests slower than LOG_SLOW_REQUEST_THRESHOLD_MS are logged at INFO
    - server errors are logged at WARNING regardless of duration
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        status_code = 500
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            extra = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "request_id": request_id,
            }
            if status_code >= 500:
                logger.warning(
                    f"{request.method} {request.url.path} failed with {status_code}",
                    extra=extra,
                )
            elif duration_ms > settings.log_slow_request_threshold_ms:
                logger.info(
                    f"Slow request: {request.method} {request.url.path} "
                    f"took {duration_ms:.2f}ms",
                    extra=extra,
                )
