"""TLS webhook host: runs the receiver under uvicorn with the provisioned server certificate."""
import asyncio
import contextlib
from typing import Generator, Optional

import uvicorn
from fastapi import FastAPI

from subscriber.config import Settings, settings as default_settings
from subscriber.handlers.certificates import CertificateStore
from subscriber.logging_config import get_logger
from subscriber.shutdown import ShutdownCoordinator
from subscriber.webhook.app import create_app


logger = get_logger(__name__)


class _CoordinatedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the ShutdownCoordinator."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


class SubscriberHost:
    """
    Webhook host bound to the process lifetime.

    start() returns once the listener accepts connections. The host stops when
    the coordinator signals cancellation (or stop() is called), and
    wait_for_shutdown() returns only after uvicorn has drained in-flight
    requests and closed its sockets.
    """

    def __init__(
        self,
        store: CertificateStore,
        coordinator: ShutdownCoordinator,
        config: Optional[Settings] = None,
        app: Optional[FastAPI] = None,
    ):
        self._store = store
        self._coordinator = coordinator
        self._config = config or default_settings
        self._app = app or create_app(self._config.webhook_path)
        self._server: Optional[_CoordinatedServer] = None
        self._serve_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    def _build_server(self) -> _CoordinatedServer:
        if not self._store.has_server_identity:
            raise RuntimeError("Server certificate must be installed before the host starts")

        config = uvicorn.Config(
            self._app,
            host=self._config.webhook_host,
            port=self._config.webhook_port,
            ssl_certfile=str(self._store.server_cert_path),
            ssl_keyfile=str(self._store.server_key_path),
            log_config=None,
            access_log=False,
        )
        return _CoordinatedServer(config)

    async def start(self) -> None:
        self._server = self._build_server()
        self._serve_task = asyncio.create_task(self._server.serve())

        while not self._server.started:
            if self._serve_task.done():
                # Startup failed; surface uvicorn's error
                await self._serve_task
                raise RuntimeError("Webhook host exited during startup")
            await asyncio.sleep(0.05)

        self._coordinator.on_cancel(self.stop)
        logger.info(
            "webhook.started",
            host=self._config.webhook_host,
            port=self._config.webhook_port,
            path=self._config.webhook_path
        )

    def stop(self) -> None:
        """Ask uvicorn to stop accepting connections and drain."""
        if self._server is not None and not self._server.should_exit:
            logger.info("webhook.stopping")
            self._server.should_exit = True

    async def wait_for_shutdown(self) -> None:
        if self._serve_task is None:
            return

        await self._serve_task
        logger.info("webhook.stopped")
