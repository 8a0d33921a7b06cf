"""
Onion courier server: gateway app, session registry and rotation controller
wired together for one process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from onioncourier.common.config import Config
from onioncourier.common.logging_utils import setup_logger

from .controller import RotationController
from .file_store import LocalFileStore
from .notifier import NotificationDispatcher
from .routes import GatewayRoutes
from .services import GatewayService
from .session_manager import SessionRegistry
from .state import OnionStateCell
from .transport import StemTransport

if TYPE_CHECKING:
    from onioncourier.common.interfaces import INotifier, IOnionTransport
    from onioncourier.common.models import ServiceConfig


class CourierServer:
    """Owns every long-lived component of a running onion courier."""

    def __init__(
        self,
        service_config: ServiceConfig,
        transport: IOnionTransport | None = None,
        notifier: INotifier | None = None,
        log_level: int | None = None,
        **controller_options: Any,
    ):
        self.config = Config()
        self.logger = setup_logger(
            self.config.LOG_LEVEL if log_level is None else log_level
        )
        self.service_config = service_config

        self.state_cell = OnionStateCell()
        self.sessions = SessionRegistry(
            self.config.SESSION_TTL, max_pending=self.config.MAX_PENDING_SESSIONS
        )
        self.store = LocalFileStore(service_config.file_root)
        self.service = GatewayService(
            self.config, self.state_cell, self.sessions, self.store
        )
        self.app = FastAPI(title="onioncourier")
        GatewayRoutes(self.service).setup_routes(self.app)

        self.transport = transport or StemTransport(
            control_port=service_config.tor_control_port
        )
        if notifier is None and service_config.enable_mail:
            notifier = NotificationDispatcher(
                service_config.smtp_host,
                service_config.smtp_port,
                verify_tls=service_config.smtp_verify_tls,
            )
        self.controller = RotationController(
            service_config,
            self.app,
            self.transport,
            self.state_cell,
            notifier=notifier,
            sessions=self.sessions,
            **controller_options,
        )

    async def serve(self, stop_event: asyncio.Event | None = None) -> None:
        """Run the rotation loop until SIGINT/SIGTERM or ``stop_event``."""
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_event.set)
        try:
            await self.controller.run(stop_event)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)

    def run(self) -> None:
        """Start Tor, serve until shut down, then stop Tor."""
        self.transport.start(self.service_config.tor_data_dir)
        try:
            asyncio.run(self.serve())
        finally:
            try:
                self.transport.close()
            except Exception:
                logging.getLogger(__name__).exception("Failed to stop transport")
