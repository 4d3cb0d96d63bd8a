"""
Topic readiness polling.

Blocks until the Event Grid module answers for the configured topic. Broker
errors and transport failures are retried forever at a fixed interval; the
edge deployment is expected to converge eventually.
"""
import asyncio

import httpx

from subscriber.clients.eventgrid import EventGridEdgeClient
from subscriber.errors import EventGridApiError
from subscriber.logging_config import get_logger
from subscriber.schemas import Topic


logger = get_logger(__name__)


async def wait_until_topic_exists(
    client: EventGridEdgeClient,
    topic_name: str,
    request_timeout: float = 30,
    retry_interval: float = 30,
) -> Topic:
    """
    Poll the Event Grid module until the topic can be retrieved.

    Args:
        client: Event Grid edge client
        topic_name: Topic to look up
        request_timeout: Per-attempt timeout (seconds)
        retry_interval: Fixed delay between attempts (seconds)

    Returns:
        The retrieved topic

    Any exception other than EventGridApiError or httpx.TransportError
    propagates to the caller.
    """
    attempt = 0

    while True:
        attempt += 1
        try:
            topic = await client.topics.get_topic(topic_name, timeout=request_timeout)
        except (EventGridApiError, httpx.TransportError) as e:
            logger.warning(
                "topic.retrieve_failed",
                topic=topic_name,
                attempt=attempt,
                reason=repr(e),
                retry_in=retry_interval
            )
            await asyncio.sleep(retry_interval)
            continue

        logger.info(
            "topic.retrieved",
            topic=topic_name,
            attempts=attempt
        )
        return topic
