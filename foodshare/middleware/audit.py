import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("foodshare.audit")


class AuditMiddleware(BaseHTTPMiddleware):
    """One log line per request: who called what, the outcome, and how long it took."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "user_id": getattr(request.state, "user_id", None),
                "latency_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response
