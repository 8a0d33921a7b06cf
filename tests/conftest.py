import asyncio
import hashlib
from pathlib import Path

import pytest

from onioncourier.common.config import Config
from onioncourier.common.exceptions import TransportError
from onioncourier.common.models import ServiceConfig


class FakeOnion:
    def __init__(self, transport: "FakeTransport", onion_id: str):
        self.transport = transport
        self.id = onion_id

    def close(self) -> None:
        self.transport.open.discard(self.id)
        self.transport.released.append(self.id)
        self.transport.events.append(f"released:{self.id}")


class FakeTransport:
    """In-memory stand-in for the Tor transport."""

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.attempts = 0
        self.issued: list[str] = []
        self.released: list[str] = []
        self.events: list[str] = []
        self.open: set[str] = set()
        self.max_open = 0
        self.started = False
        self.closed = False

    def start(self, data_dir: Path | None) -> None:
        self.started = True

    def listen(self, remote_ports, local_port, *, version3=True) -> FakeOnion:
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise TransportError("tor unavailable")
        onion_id = f"courier{len(self.issued):02d}" + "x" * 47
        self.issued.append(onion_id)
        self.open.add(onion_id)
        self.max_open = max(self.max_open, len(self.open))
        return FakeOnion(self, onion_id)

    def close(self) -> None:
        self.closed = True


class FakeListener:
    def __init__(self, app, host: str, port: int):
        self.app = app
        self.host = host
        self.port = port
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True


class ListenerRecorder:
    def __init__(self):
        self.listeners: list[FakeListener] = []

    def __call__(self, app, host: str, port: int) -> FakeListener:
        listener = FakeListener(app, host, port)
        self.listeners.append(listener)
        return listener


def fast_derive(password: bytes) -> bytes:
    return hashlib.sha256(password).digest()


async def wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def file_root(tmp_path: Path) -> Path:
    root = tmp_path / "files"
    root.mkdir()
    return root


@pytest.fixture
def make_service_config(file_root: Path, tmp_path: Path):
    def factory(**overrides) -> ServiceConfig:
        values = {
            "password": "correct horse battery staple",
            "file_root": file_root,
            "duration": 60,
            "port": 9000,
            "subscribers_file": tmp_path / "subscribers.txt",
        }
        values.update(overrides)
        return ServiceConfig.from_config(Config(), **values)

    return factory


@pytest.fixture
def service_config(make_service_config) -> ServiceConfig:
    return make_service_config()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def listeners() -> ListenerRecorder:
    return ListenerRecorder()
