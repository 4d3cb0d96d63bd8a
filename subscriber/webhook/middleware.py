import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add a unique request ID to each delivery.
    - Reuses an incoming X-Request-ID, otherwise generates a UUID
    - Adds it to response headers as X-Request-ID
    - Binds it, plus the Event Grid delivery headers, to structlog context
    """
    
    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        if "aeg-subscription-name" in request.headers:
            structlog.contextvars.bind_contextvars(
                subscription=request.headers["aeg-subscription-name"],
                delivery_count=request.headers.get("aeg-delivery-count"),
            )
        
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        
        return response
