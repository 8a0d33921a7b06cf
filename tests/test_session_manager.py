import threading

import pytest

from onioncourier.common.exceptions import AuthorizationError
from onioncourier.server.session_manager import SessionRegistry

KEY = "ab" * 32


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(session_ttl=60, clock=clock)


def test_create_session(registry: SessionRegistry) -> None:
    session = registry.create()
    assert len(session.session_id) >= 32  # noqa: PLR2004
    assert session.authenticated is False
    assert session.cwd == "/"
    assert registry.get(session.session_id) is not None


def test_session_ids_are_unique(registry: SessionRegistry) -> None:
    ids = {registry.create().session_id for _ in range(100)}
    assert len(ids) == 100  # noqa: PLR2004


def test_authenticate_requires_matching_key(registry: SessionRegistry) -> None:
    session = registry.create()
    assert not registry.authenticate(session.session_id, "00" * 32, KEY)
    assert not registry.get(session.session_id).authenticated
    assert registry.authenticate(session.session_id, KEY.upper(), KEY)
    assert registry.get(session.session_id).authenticated


def test_authenticate_without_published_key(registry: SessionRegistry) -> None:
    session = registry.create()
    assert not registry.authenticate(session.session_id, "", "")


def test_pending_sessions_are_capped(clock: FakeClock) -> None:
    registry = SessionRegistry(session_ttl=60, clock=clock, max_pending=5)
    logged_in = registry.create()
    registry.authenticate(logged_in.session_id, KEY, KEY)
    pending = []
    for _ in range(50):
        clock.now += 0.01
        pending.append(registry.create().session_id)

    assert registry.active_count() == 6  # noqa: PLR2004
    assert registry.get(logged_in.session_id).authenticated
    # Only the most recent pending sessions survive.
    assert all(registry.get(sid) is None for sid in pending[:-5])
    assert all(registry.get(sid) is not None for sid in pending[-5:])


def test_create_drops_idle_sessions(registry: SessionRegistry, clock: FakeClock) -> None:
    stale = registry.create()
    clock.now += 61
    registry.create()
    assert registry.active_count() == 1
    assert registry.get(stale.session_id) is None


def test_returned_sessions_are_copies(registry: SessionRegistry) -> None:
    session = registry.create()
    session.authenticated = True
    session.cwd = "/elsewhere"
    stored = registry.get(session.session_id)
    assert stored.authenticated is False
    assert stored.cwd == "/"


def test_idle_sessions_expire(registry: SessionRegistry, clock: FakeClock) -> None:
    session = registry.create()
    clock.now += 30
    assert registry.get(session.session_id) is not None
    clock.now += 61
    assert registry.get(session.session_id) is None
    assert registry.active_count() == 0


def test_clean_expired_sessions(registry: SessionRegistry, clock: FakeClock) -> None:
    old = registry.create()
    clock.now += 50
    fresh = registry.create()
    clock.now += 20
    registry.clean_expired_sessions()
    assert registry.get(old.session_id) is None
    assert registry.get(fresh.session_id) is not None


def test_set_cwd_and_remove(registry: SessionRegistry) -> None:
    session = registry.create()
    registry.set_cwd(session.session_id, "/docs")
    assert registry.get(session.session_id).cwd == "/docs"
    registry.remove(session.session_id)
    with pytest.raises(AuthorizationError):
        registry.set_cwd(session.session_id, "/")


def test_close_all(registry: SessionRegistry) -> None:
    for _ in range(3):
        registry.create()
    registry.close_all()
    assert registry.active_count() == 0


def test_concurrent_access(registry: SessionRegistry) -> None:
    created: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(50):
            session = registry.create()
            registry.authenticate(session.session_id, KEY, KEY)
            registry.set_cwd(session.session_id, "/a")
            with lock:
                created.append(session.session_id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert registry.active_count() == 400  # noqa: PLR2004
    assert all(registry.get(sid).authenticated for sid in created)
