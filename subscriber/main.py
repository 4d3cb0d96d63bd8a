"""
Subscriber module entry point.
Provisions certificates, starts the webhook host, optionally registers the
Event Grid subscription and waits for a shutdown signal.
"""
import asyncio
import sys

from subscriber import bootstrap
from subscriber.errors import ConfigurationError
from subscriber.logging_config import configure_logging, get_logger
from subscriber.shutdown import ShutdownCoordinator


logger = get_logger(__name__)


async def run() -> None:
    # Signals long running components when to power down (Ctrl+C, SIGTERM, interpreter exit)
    coordinator = ShutdownCoordinator()
    coordinator.install_signal_handlers(asyncio.get_running_loop())

    await bootstrap.run(coordinator)


def main() -> None:
    configure_logging()
    logger.info("subscriber.starting")

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        logger.error(
            "subscriber.configuration_error",
            error=str(e)
        )
        sys.exit(1)
    except Exception as e:
        logger.error(
            "subscriber.fatal_error",
            error=str(e),
            exc_info=True
        )
        sys.exit(1)

    logger.info("subscriber.shutdown_complete")


if __name__ == "__main__":
    main()
