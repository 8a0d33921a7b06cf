"""
Address rotation controller.

Each cycle acquires a fresh onion address, derives the cycle key, publishes
``(address, valid_until)``, serves HTTP until the validity window elapses or
shutdown is requested, then drains the listener and releases the address
before the next cycle starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import socket
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Protocol

import uvicorn

from onioncourier.common.config import Config
from onioncourier.common.crypto import CryptoUtils
from onioncourier.common.exceptions import (
    CourierError,
    KeyDerivationError,
    NotificationError,
)
from onioncourier.common.models import OnionServiceState
from onioncourier.server.notifier import load_subscribers

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from fastapi import FastAPI

    from onioncourier.common.interfaces import (
        INotifier,
        IOnionListener,
        IOnionTransport,
        ISessionRegistry,
    )
    from onioncourier.common.models import NotificationResult, ServiceConfig
    from onioncourier.server.state import OnionStateCell

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    ROTATING = "rotating"
    DRAINING = "draining"
    STOPPED = "stopped"


class IHttpListener(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class CycleServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the controller."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class UvicornListener:
    """Serves the gateway app on a socket bound for a single cycle."""

    def __init__(
        self, app: FastAPI, host: str, port: int, graceful_timeout: int = 30
    ):
        self.host = host
        self.port = port
        self.server = CycleServer(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                lifespan="off",
                log_level="warning",
                timeout_graceful_shutdown=graceful_timeout,
            )
        )
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        # Bind here so a busy port surfaces as OSError instead of uvicorn's exit.
        sock = socket.create_server((self.host, self.port))
        self._task = asyncio.create_task(self.server.serve(sockets=[sock]))
        while not self.server.started and not self._task.done():
            await asyncio.sleep(0.05)
        if self._task.done():
            self._task.result()

    async def stop(self) -> None:
        if self._task is None:
            return
        self.server.should_exit = True
        try:
            await self._task
        finally:
            self._task = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RotationController:
    """Runs rotation cycles one at a time until stopped."""

    def __init__(  # noqa: PLR0913
        self,
        config: ServiceConfig,
        app: FastAPI,
        transport: IOnionTransport,
        state_cell: OnionStateCell,
        notifier: INotifier | None = None,
        sessions: ISessionRegistry | None = None,
        *,
        listener_factory: Callable[[FastAPI, str, int], IHttpListener] | None = None,
        key_deriver: Callable[[bytes], bytes] | None = None,
        subscribers_loader: Callable[[Path], list[str]] = load_subscribers,
        clock: Callable[[], datetime] = _utcnow,
        acquire_backoff: float | None = None,
        notify_drain_timeout: float | None = None,
    ):
        defaults = Config()
        self.config = config
        self.app = app
        self.transport = transport
        self.state_cell = state_cell
        self.notifier = notifier
        self.sessions = sessions
        self.listener_factory = listener_factory or UvicornListener
        self.key_deriver = key_deriver or CryptoUtils.derive_key
        self.subscribers_loader = subscribers_loader
        self.clock = clock
        self.acquire_backoff = (
            defaults.ACQUIRE_BACKOFF if acquire_backoff is None else acquire_backoff
        )
        self.notify_drain_timeout = (
            defaults.NOTIFY_DRAIN_TIMEOUT
            if notify_drain_timeout is None
            else notify_drain_timeout
        )
        self.remote_port = defaults.REMOTE_PORT
        self.time_format = defaults.TIME_FORMAT
        self.phase = Phase.IDLE
        self.cycles_completed = 0
        self._stop_event: asyncio.Event | None = None

    def stop(self) -> None:
        """Request shutdown; the running cycle drains and the loop exits."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run cycles until ``stop_event`` is set, then release everything."""
        self._stop_event = stop_event or asyncio.Event()
        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_cycle(self._stop_event)
                except (CourierError, OSError) as err:
                    self.phase = Phase.IDLE
                    logger.error(
                        "Service cycle failed: %s (retrying in %s seconds)",
                        err,
                        self.acquire_backoff,
                    )
                    await self._wait(self._stop_event, self.acquire_backoff)
        finally:
            self._shutdown()

    async def run_cycle(self, stop_event: asyncio.Event) -> None:
        """Acquire, publish, serve and tear down a single address."""
        if self.sessions is not None:
            self.sessions.clean_expired_sessions()
        self.phase = Phase.ACQUIRING
        onion = await asyncio.to_thread(
            self.transport.listen, [self.remote_port], self.config.port
        )
        try:
            if stop_event.is_set():
                return
            await self._serve_cycle(onion, stop_event)
        finally:
            await self._release(onion)
            self.phase = Phase.IDLE if not stop_event.is_set() else Phase.DRAINING

    async def _serve_cycle(self, onion: IOnionListener, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.duration
        started_at = self.clock()

        key = await asyncio.to_thread(self._derive_key)
        state = OnionServiceState.begin(
            onion.id, started_at, self.config.duration, key.hex()
        )
        self.state_cell.publish(state)
        self.phase = Phase.ACTIVE
        self._log_banner(state)

        listener = self.listener_factory(self.app, self.config.host, self.config.port)
        try:
            await listener.start()
        except OSError:
            self.state_cell.clear()
            raise
        notify_task = None
        if self.config.enable_mail and self.notifier is not None:
            notify_task = asyncio.create_task(
                asyncio.to_thread(self._send_notification, self.notifier, state, key)
            )
            notify_task.add_done_callback(self._notification_done)

        try:
            stopped = await self._wait(stop_event, deadline - loop.time())
            if stopped:
                self.phase = Phase.DRAINING
                logger.info("Shutting down gracefully...")
            else:
                self.phase = Phase.ROTATING
                logger.info("Rotating to new onion address...")
        finally:
            await listener.stop()
            if notify_task is not None:
                await self._await_notification(notify_task)
        self.cycles_completed += 1

    @staticmethod
    async def _wait(stop_event: asyncio.Event, timeout: float) -> bool:
        """Wait for ``timeout`` seconds or the stop event, whichever is first.

        Returns True when stopped.
        """
        if stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            return False
        return True

    def _derive_key(self) -> bytes:
        with self.config.password.borrow() as password:
            try:
                return self.key_deriver(password)
            except Exception as err:
                msg = f"key derivation failed: {err!r}"
                raise KeyDerivationError(msg) from err

    def _send_notification(
        self, notifier: INotifier, state: OnionServiceState, key: bytes
    ) -> NotificationResult:
        subscribers = self.subscribers_loader(self.config.subscribers_file)
        return notifier.notify(
            state.address,
            self.config.port,
            key,
            state.valid_until.strftime(self.time_format),
            self.config.duration,
            subscribers,
        )

    @staticmethod
    def _notification_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        err = task.exception()
        if isinstance(err, NotificationError):
            logger.warning("Failed to send notifications: %s", err)
        elif err is not None:
            logger.error("Notification crashed", exc_info=err)
        else:
            result = task.result()
            for recipient, reason in result.failures.items():
                logger.debug("Undelivered: %s (%s)", recipient, reason)

    async def _await_notification(self, task: asyncio.Task) -> None:
        done, _ = await asyncio.wait({task}, timeout=self.notify_drain_timeout)
        if not done:
            logger.warning(
                "Notification still running after %s seconds; leaving it behind",
                self.notify_drain_timeout,
            )

    async def _release(self, onion: IOnionListener) -> None:
        try:
            await asyncio.to_thread(onion.close)
        except CourierError as err:
            logger.error("Failed to release onion %s: %s", onion.id, err)

    def _log_banner(self, state: OnionServiceState) -> None:
        key_display = (
            state.key_hex
            if self.config.show_key
            else CryptoUtils.redact_key(state.key_hex)
        )
        logger.info(
            "\n=== NEW ONION SERVICE ===\n"
            "Address: %s\n"
            "Local:   http://localhost:%d\n"
            "Key:     %s\n"
            "Valid until: %s UTC\n"
            "Duration: %ss\n"
            "=========================",
            state.onion_url,
            self.config.port,
            key_display,
            state.valid_until.strftime(self.time_format),
            self.config.duration,
        )

    def _shutdown(self) -> None:
        self.phase = Phase.STOPPED
        self.state_cell.clear()
        if self.sessions is not None:
            self.sessions.close_all()
        self.config.password.release()
        logger.info("Rotation controller stopped")
