"""Event Grid edge module management client."""
import asyncio
import ssl
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from subscriber.errors import EventGridApiError
from subscriber.logging_config import get_logger
from subscriber.schemas import EventSubscription, Topic


logger = get_logger(__name__)


API_VERSION = "2019-01-01-preview"


class _Operations:
    def __init__(self, client: "EventGridEdgeClient"):
        self._client = client


class TopicOperations(_Operations):

    async def get_topic(self, topic_name: str, timeout: Optional[float] = None) -> Topic:
        """
        Look up a topic by name.

        Any success status means the topic exists; a body that does not
        describe a topic falls back to the requested name.

        Raises:
            EventGridApiError: If the module answers with a non-success status
            httpx.TransportError: If the module cannot be reached in time
        """
        body = await self._client.request(
            "GET",
            f"/topics/{quote(topic_name, safe='')}",
            operation="GetTopic",
            timeout=timeout,
        )
        try:
            return Topic.model_validate({"name": topic_name, **body})
        except ValidationError as e:
            logger.warning(
                "eventgrid.unexpected_body",
                operation="GetTopic",
                topic=topic_name,
                error=str(e)
            )
            return Topic(name=topic_name)


class SubscriptionOperations(_Operations):

    async def put_subscription(
        self,
        topic_name: str,
        subscription_name: str,
        event_subscription: EventSubscription,
        timeout: Optional[float] = None,
    ) -> EventSubscription:
        """Create or update a subscription on a topic."""
        body = await self._client.request(
            "PUT",
            f"/topics/{quote(topic_name, safe='')}/eventSubscriptions/{quote(subscription_name, safe='')}",
            operation="PutSubscription",
            json=event_subscription.to_api(),
            timeout=timeout,
        )
        if not body:
            return event_subscription

        try:
            return EventSubscription.model_validate(body)
        except ValidationError as e:
            # Accepted by the module; the request descriptor is what was stored
            logger.warning(
                "eventgrid.unexpected_body",
                operation="PutSubscription",
                subscription=subscription_name,
                error=str(e)
            )
            return event_subscription


class EventGridEdgeClient:
    """
    Async client for the Event Grid module REST API.

    Usage:
        async with EventGridEdgeClient("https://eventgridmodule", 4438, ssl_context) as client:
            topic = await client.topics.get_topic("sampleTopic1")
    """

    def __init__(
        self,
        base_url: str,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"{base_url}:{port}"
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            verify=ssl_context if ssl_context is not None else True,
            transport=transport,
        )
        self.topics = TopicOperations(self)
        self.subscriptions = SubscriptionOperations(self)

    async def __aenter__(self) -> "EventGridEdgeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Send one request and return its JSON object body ({} when there is none).

        timeout bounds the whole call, not each connect/read phase.

        Raises:
            EventGridApiError: On a non-success status
            httpx.TimeoutException: If the call does not finish within timeout
            httpx.TransportError: On other connection failures
        """
        kwargs: Dict[str, Any] = {"params": {"api-version": API_VERSION}}
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await asyncio.wait_for(self._http.request(method, path, **kwargs), timeout)
        except asyncio.TimeoutError as e:
            raise httpx.TimeoutException(f"{operation} did not complete within {timeout}s") from e

        logger.debug(
            "eventgrid.response",
            operation=operation,
            status_code=response.status_code
        )

        if not response.is_success:
            raise EventGridApiError(operation, response.status_code, response.text)

        if not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError:
            logger.warning(
                "eventgrid.unexpected_body",
                operation=operation,
                status_code=response.status_code,
                error="invalid JSON body"
            )
            return {}

        return payload if isinstance(payload, dict) else {}
