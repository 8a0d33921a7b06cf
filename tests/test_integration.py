# Integration tests
import asyncio
import socket
from datetime import timedelta

import requests
from conftest import FakeTransport, fast_derive, wait_until

from onioncourier.server.controller import Phase
from onioncourier.server.core import CourierServer


def _free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def _get(url: str, **kwargs):
    try:
        return requests.get(url, timeout=2, **kwargs)
    except requests.ConnectionError:
        return None


def test_full_rotation_over_http(make_service_config, file_root):
    """Serve two cycles over real HTTP and watch the address rotate."""
    (file_root / "hello.txt").write_text("hi")
    host = "127.0.0.1"
    port = _free_port(host)
    base_url = f"http://{host}:{port}"
    transport = FakeTransport()
    server = CourierServer(
        make_service_config(duration=2, port=port, host=host),
        transport=transport,
        key_deriver=fast_derive,
    )
    seen = []

    async def poll_status():
        response = await asyncio.to_thread(_get, f"{base_url}/api/onion")
        if response is not None and response.status_code == 200:
            body = response.json()
            if not seen or seen[-1] != body:
                seen.append(body)
        return response

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))

        while not seen:
            await poll_status()
            await asyncio.sleep(0.05)
        state = server.state_cell.snapshot()
        assert seen[0]["onionAddress"] == f"http://{transport.issued[0]}.onion"
        assert state.valid_until - state.started_at == timedelta(seconds=2)
        assert seen[0]["validUntil"] == state.valid_until.strftime("%Y-%m-%d %H:%M:%S")

        login = await asyncio.to_thread(
            requests.post, f"{base_url}/login", json={"key": state.key_hex}, timeout=2
        )
        assert login.status_code == 200
        headers = {"X-Session-ID": login.json()["session_id"]}
        listing = await asyncio.to_thread(_get, f"{base_url}/files", headers=headers)
        assert [e["name"] for e in listing.json()["entries"]] == ["hello.txt"]

        while len(seen) < 2:
            await poll_status()
            await asyncio.sleep(0.05)
        assert seen[1]["onionAddress"] != seen[0]["onionAddress"]
        assert seen[1]["validUntil"] > seen[0]["validUntil"]

        stop.set()
        await asyncio.wait_for(task, timeout=10)

    asyncio.run(asyncio.wait_for(scenario(), timeout=30))

    assert server.controller.phase == Phase.STOPPED
    assert server.controller.cycles_completed >= 2
    assert transport.open == set()
    assert _get(f"{base_url}/health") is None


def test_busy_port_retries(make_service_config):
    """A bound port fails the cycle, which is retried after the backoff."""
    host = "127.0.0.1"
    blocker = socket.create_server((host, 0))
    port = blocker.getsockname()[1]
    transport = FakeTransport()
    server = CourierServer(
        make_service_config(port=port, host=host),
        transport=transport,
        key_deriver=fast_derive,
        acquire_backoff=0.05,
    )

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))
        await wait_until(lambda: transport.attempts >= 2)
        assert server.state_cell.snapshot() is None
        stop.set()
        await asyncio.wait_for(task, timeout=5)

    try:
        asyncio.run(scenario())
    finally:
        blocker.close()
    assert transport.released == transport.issued


def _slow_server(make_service_config, duration: float, delay: float):
    host = "127.0.0.1"
    port = _free_port(host)
    transport = FakeTransport()
    server = CourierServer(
        make_service_config(duration=duration, port=port, host=host),
        transport=transport,
        key_deriver=fast_derive,
    )

    @server.app.get("/slow")
    async def slow():
        transport.events.append("request-started")
        await asyncio.sleep(delay)
        transport.events.append(f"request-done:{server.controller.phase.value}")
        return {"slept": delay}

    return server, transport, f"http://{host}:{port}"


async def _wait_serving(base_url: str) -> None:
    while await asyncio.to_thread(_get, f"{base_url}/health") is None:
        await asyncio.sleep(0.02)


def test_rotation_drains_in_flight_request(make_service_config):
    """A request still running when the cycle expires completes first."""
    server, transport, base_url = _slow_server(make_service_config, 1, 1.5)

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))
        await _wait_serving(base_url)
        response = await asyncio.to_thread(requests.get, f"{base_url}/slow", timeout=10)
        assert response.status_code == 200
        await wait_until(lambda: len(transport.issued) >= 2)
        stop.set()
        await asyncio.wait_for(task, timeout=10)

    asyncio.run(asyncio.wait_for(scenario(), timeout=30))

    events = transport.events
    assert "request-done:rotating" in events
    first_release = events.index(f"released:{transport.issued[0]}")
    assert events.index("request-done:rotating") < first_release


def test_shutdown_drains_in_flight_request(make_service_config):
    """Shutdown waits for a running request before releasing the address."""
    server, transport, base_url = _slow_server(make_service_config, 30, 1)

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))
        await _wait_serving(base_url)
        request = asyncio.create_task(
            asyncio.to_thread(requests.get, f"{base_url}/slow", timeout=10)
        )
        await wait_until(lambda: "request-started" in transport.events)
        stop.set()
        response = await request
        assert response.status_code == 200
        assert response.json() == {"slept": 1}
        await asyncio.wait_for(task, timeout=10)

    asyncio.run(asyncio.wait_for(scenario(), timeout=30))

    assert transport.events == [
        "request-started",
        "request-done:draining",
        f"released:{transport.issued[0]}",
    ]
    assert server.controller.phase == Phase.STOPPED
