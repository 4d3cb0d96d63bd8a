"""
Subscriber bootstrap sequence.

1. Load host configuration
2. Install server certificate, intermediates and trust bundle
3. Start the webhook host
4. If createEventGridSubscription is set:
   validate the Event Grid section, build a mutual-TLS client with the
   identity certificate, wait for certificate propagation, wait for the
   topic to exist and register the webhook subscription
5. Wait for the host to shut down
"""
import asyncio
from typing import Optional

from subscriber.clients.security_daemon import SecurityDaemonClient
from subscriber.config import Settings, settings as default_settings
from subscriber.handlers.certificates import CertificateStore, provision_server_identity
from subscriber.handlers.registration import create_event_grid_client, register_subscription
from subscriber.handlers.topic_readiness import wait_until_topic_exists
from subscriber.host_settings import (
    GridConfiguration,
    HostConfiguration,
    load_host_configuration,
    validate_grid_configuration,
)
from subscriber.logging_config import get_logger
from subscriber.schemas import EventSubscription
from subscriber.shutdown import ShutdownCoordinator
from subscriber.webhook.host import SubscriberHost


logger = get_logger(__name__)


class Bootstrapper:
    """Runs the bootstrap sequence once for the lifetime of the process."""

    def __init__(
        self,
        coordinator: ShutdownCoordinator,
        config: Optional[Settings] = None,
        store: Optional[CertificateStore] = None,
        daemon_factory=SecurityDaemonClient,
        host_factory=SubscriberHost,
    ):
        self.coordinator = coordinator
        self.config = config or default_settings
        self.store = store or CertificateStore(self.config.certificate_directory)
        self._daemon_factory = daemon_factory
        self._host_factory = host_factory

    async def run(self) -> None:
        host_config = load_host_configuration(self.config.host_settings_file)
        logger.info(
            "bootstrap.configuration_loaded",
            create_subscription=host_config.create_event_grid_subscription
        )

        host = await self.start_host()

        try:
            if host_config.create_event_grid_subscription:
                await self._run_until_cancelled(self.register(host_config))
        except BaseException:
            host.stop()
            await host.wait_for_shutdown()
            raise

        await host.wait_for_shutdown()

    async def start_host(self) -> SubscriberHost:
        await provision_server_identity(self.store, self.config, daemon_factory=self._daemon_factory)

        host = self._host_factory(self.store, self.coordinator, self.config)
        await host.start()
        return host

    async def register(self, host_config: HostConfiguration) -> EventSubscription:
        grid_config: GridConfiguration = validate_grid_configuration(host_config.event_grid)

        client = await create_event_grid_client(
            grid_config, self.store, self.config, daemon_factory=self._daemon_factory
        )
        async with client:
            # Certificates issued by the edge runtime take a while to become current
            logger.info(
                "bootstrap.waiting_for_certificates",
                seconds=self.config.certificate_propagation_delay_seconds
            )
            await asyncio.sleep(self.config.certificate_propagation_delay_seconds)

            await wait_until_topic_exists(
                client,
                grid_config.topic.name,
                request_timeout=self.config.request_timeout_seconds,
                retry_interval=self.config.topic_retry_interval_seconds,
            )

            return await register_subscription(
                client,
                grid_config,
                request_timeout=self.config.request_timeout_seconds,
            )

    async def _run_until_cancelled(self, coro) -> None:
        """Run coro, abandoning it if shutdown is requested first."""
        work = asyncio.create_task(coro)
        cancelled = asyncio.create_task(self.coordinator.wait_cancelled())

        try:
            await asyncio.wait({work, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            cancelled.cancel()

        if work.done():
            work.result()
            return

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        logger.warning("bootstrap.registration_abandoned", reason="shutdown_requested")


async def run(coordinator: ShutdownCoordinator, config: Optional[Settings] = None) -> None:
    """Run the bootstrap sequence, always releasing the completion latch on the way out."""
    try:
        await Bootstrapper(coordinator, config).run()
    finally:
        coordinator.complete()
