import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from coupon_engine.core.logger import get_logger

log = get_logger("request")

"""
    Custom middle ware to log meta data and response time of the server for specific api
"""
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        process_ms = round((time.perf_counter() - start) * 1000, 2)
        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "time_ms": process_ms
        }
        log.info("[REQUEST_LOG] %s", log_data)
        return response
