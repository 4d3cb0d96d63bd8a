import json
from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog

from subscriber.config import settings
from subscriber.logging_config import get_logger
from subscriber.webhook.middleware import RequestIDMiddleware


logger = get_logger(__name__)


def _event_summary(event: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the identifying fields of an Event Grid or CloudEvents event."""
    return {
        "event_id": event.get("id"),
        "event_type": event.get("eventType") or event.get("type"),
        "subject": event.get("subject"),
        "topic": event.get("topic") or event.get("source"),
    }


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}}
    )


def create_app(webhook_path: str = settings.webhook_path) -> FastAPI:
    """
    Build the webhook receiver.

    Events are delivered as a single JSON object or a JSON array of objects.
    """
    app = FastAPI(
        title="Event Grid Subscriber",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )
    app.add_middleware(RequestIDMiddleware)

    @app.post(webhook_path)
    async def receive_events(request: Request):
        raw = await request.body()
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("event.invalid_payload", size=len(raw))
            return _error(status.HTTP_400_BAD_REQUEST, "INVALID_PAYLOAD", "Body is not valid JSON")

        events: List[Any] = payload if isinstance(payload, list) else [payload]
        if not events or not all(isinstance(e, dict) for e in events):
            logger.warning("event.invalid_payload", size=len(raw))
            return _error(
                status.HTTP_400_BAD_REQUEST,
                "INVALID_PAYLOAD",
                "Body must be an event object or an array of event objects"
            )

        for event in events:
            logger.info("event.received", data=event.get("data"), **_event_summary(event))

        return {"received": len(events)}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle all unhandled exceptions.
        Logs full traceback and returns 500 error.
        """
        request_id = structlog.contextvars.get_contextvars().get("request_id", "unknown")

        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id
                }
            }
        )

    return app
