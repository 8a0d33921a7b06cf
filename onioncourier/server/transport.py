"""
Tor transport adapter built on stem.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

import stem
import stem.connection
import stem.process
from stem.control import Controller

from onioncourier.common.exceptions import TransportError

if TYPE_CHECKING:
    from pathlib import Path
    from subprocess import Popen

logger = logging.getLogger(__name__)


class StemOnionListener:
    """An ephemeral hidden service registered on a Tor controller."""

    def __init__(self, controller: Controller, service_id: str):
        self._controller = controller
        self.id = service_id
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._controller.remove_ephemeral_hidden_service(self.id)
        except (stem.ControllerError, stem.SocketError) as err:
            raise TransportError(f"failed to remove onion {self.id}: {err}") from err
        logger.info("Released onion service %s", self.id)


class StemTransport:
    """Launches one Tor process and mints ephemeral v3 onion services on it."""

    def __init__(
        self,
        control_port: int = 9051,
        tor_cmd: str = "tor",
        launch_timeout: int = 90,
    ):
        self.control_port = control_port
        self.tor_cmd = tor_cmd
        self.launch_timeout = launch_timeout
        self._process: Popen | None = None
        self._controller: Controller | None = None

    def start(self, data_dir: Path | None) -> None:
        tor_config = {
            "ControlPort": str(self.control_port),
            "CookieAuthentication": "1",
        }
        if data_dir is not None:
            tor_config["DataDirectory"] = str(data_dir)

        # stem enforces its launch timeout with SIGALRM, main thread only.
        timeout = (
            self.launch_timeout
            if threading.current_thread() is threading.main_thread()
            else None
        )
        logger.info("Starting Tor (control port %d)...", self.control_port)
        try:
            self._process = stem.process.launch_tor_with_config(
                config=tor_config,
                tor_cmd=self.tor_cmd,
                timeout=timeout,
                take_ownership=True,
            )
            self._controller = Controller.from_port(port=self.control_port)
            self._controller.authenticate()
        except (OSError, stem.SocketError, stem.connection.AuthenticationFailure) as err:
            self.close()
            raise TransportError(f"failed to start Tor: {err}") from err

    def listen(
        self, remote_ports: list[int], local_port: int, *, version3: bool = True
    ) -> StemOnionListener:
        if self._controller is None:
            msg = "Tor transport is not started"
            raise TransportError(msg)
        ports = {port: f"127.0.0.1:{local_port}" for port in remote_ports}
        try:
            response = self._controller.create_ephemeral_hidden_service(
                ports,
                key_type="NEW",
                key_content="ED25519-V3" if version3 else "BEST",
                await_publication=True,
            )
        except (stem.ControllerError, stem.SocketError, stem.Timeout) as err:
            raise TransportError(f"onion creation failed: {err}") from err
        return StemOnionListener(self._controller, response.service_id)

    def close(self) -> None:
        if self._controller is not None:
            self._controller.close()
            self._controller = None
        if self._process is not None:
            self._process.kill()
            self._process.wait()
            self._process = None
            logger.info("Tor stopped")
