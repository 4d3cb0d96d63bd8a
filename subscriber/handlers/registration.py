"""Webhook subscription registration against the Event Grid module."""
from typing import Optional

from subscriber.clients.eventgrid import EventGridEdgeClient
from subscriber.clients.security_daemon import SecurityDaemonClient
from subscriber.config import Settings, settings as default_settings
from subscriber.handlers.certificates import CertificateStore, provision_client_identity
from subscriber.host_settings import GridConfiguration
from subscriber.logging_config import get_logger
from subscriber.schemas import (
    EventDeliverySchema,
    EventSubscription,
    EventSubscriptionProperties,
    WebHookDestination,
    WebHookDestinationProperties,
    parse_grid_url,
)


logger = get_logger(__name__)


def create_event_subscription(grid_config: GridConfiguration) -> EventSubscription:
    """
    Build the webhook subscription descriptor from validated configuration.

    Raises:
        UnknownEventSchemaError: If the configured eventSchema is not supported
    """
    subscription = grid_config.subscription

    return EventSubscription(
        name=subscription.name,
        properties=EventSubscriptionProperties(
            topic=grid_config.topic.name,
            event_delivery_schema=EventDeliverySchema.parse(subscription.event_schema),
            destination=WebHookDestination(
                properties=WebHookDestinationProperties(endpoint_url=subscription.url),
            ),
        ),
    )


async def create_event_grid_client(
    grid_config: GridConfiguration,
    store: CertificateStore,
    config: Optional[Settings] = None,
    daemon_factory=SecurityDaemonClient,
) -> EventGridEdgeClient:
    """
    Build a mutual-TLS client for the configured Event Grid module.

    The URL is checked before the identity certificate is requested, so a
    malformed URL fails without any network call.

    Raises:
        InvalidGridUrlError: If the URL is not '<protocol>://<moduleName>:<portNo>'
    """
    base_url, port = parse_grid_url(grid_config.url)

    await provision_client_identity(store, config or default_settings, daemon_factory=daemon_factory)

    return EventGridEdgeClient(base_url, port, ssl_context=store.client_ssl_context())


async def register_subscription(
    client: EventGridEdgeClient,
    grid_config: GridConfiguration,
    request_timeout: float = 30,
) -> EventSubscription:
    """
    Create or update the webhook subscription. Not retried: any failure is fatal.

    Raises:
        EventGridApiError: If the module rejects the subscription
        httpx.TransportError: If the request fails or times out
    """
    topic_name = grid_config.topic.name
    event_subscription = create_event_subscription(grid_config)

    created = await client.subscriptions.put_subscription(
        topic_name,
        event_subscription.name,
        event_subscription,
        timeout=request_timeout,
    )

    logger.info(
        "subscription.created",
        subscription=event_subscription.to_api(),
        topic=topic_name
    )
    return created
