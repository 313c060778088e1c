from __future__ import annotations

import asyncio

from unifi_controller_client.client import ControllerClient
from unifi_controller_client.config import ConnectionConfig
from unifi_controller_client.keepalive import SessionKeepAlive

from .helpers import REFUSED, FakeTransport, login_ok, status_response, unifi_response

SYSINFO = "/api/s/default/stat/sysinfo"


def _local(transport: FakeTransport, *login_responses) -> FakeTransport:
    transport.add("POST", "/api/auth/login", REFUSED)
    transport.add("POST", "/api/login", *(login_responses or (login_ok(),)))
    return transport


async def test_tick_logs_in_when_unauthenticated(
    local_config: ConnectionConfig, transport: FakeTransport
) -> None:
    _local(transport)
    client = ControllerClient(local_config, transport=transport)

    assert await SessionKeepAlive(client).async_tick() is True

    assert client.is_authenticated()
    assert transport.calls("GET", SYSINFO) == 0


async def test_tick_checks_live_session(
    local_config: ConnectionConfig, transport: FakeTransport
) -> None:
    _local(transport)
    transport.add("GET", SYSINFO, unifi_response([{"version": "8.0"}]))
    client = ControllerClient(local_config, transport=transport)
    await client.login()

    assert await SessionKeepAlive(client).async_tick() is True

    assert transport.calls("GET", SYSINFO) == 1
    assert transport.calls("POST", "/api/login") == 1


async def test_failed_check_forces_relogin(
    local_config: ConnectionConfig, transport: FakeTransport
) -> None:
    _local(transport, login_ok("unifises=one"), login_ok("unifises=two"))
    transport.add("GET", SYSINFO, status_response(500))
    client = ControllerClient(local_config, transport=transport)
    await client.login()

    assert await SessionKeepAlive(client).async_tick() is True

    assert transport.calls("POST", "/api/login") == 2
    assert client.sessions.session is not None
    assert client.sessions.session.token == "unifises=two"


async def test_failed_relogin_is_not_raised(
    local_config: ConnectionConfig, transport: FakeTransport
) -> None:
    _local(transport, status_response(401))
    client = ControllerClient(local_config, transport=transport)

    assert await SessionKeepAlive(client).async_tick() is True
    assert not client.is_authenticated()


async def test_tick_stops_when_disabled_or_cloud(
    local_config: ConnectionConfig, cloud_config: ConnectionConfig, transport: FakeTransport
) -> None:
    local = ControllerClient(local_config, transport=transport)
    cloud = ControllerClient(cloud_config, transport=transport)

    assert await SessionKeepAlive(local, is_enabled=lambda: False).async_tick() is False
    assert await SessionKeepAlive(cloud).async_tick() is False
    assert transport.requests == []


async def test_start_is_refused_for_cloud(
    cloud_config: ConnectionConfig, transport: FakeTransport
) -> None:
    keepalive = SessionKeepAlive(ControllerClient(cloud_config, transport=transport))

    assert keepalive.start() is False
    assert not keepalive.running


async def test_start_and_stop(local_config: ConnectionConfig, transport: FakeTransport) -> None:
    keepalive = SessionKeepAlive(ControllerClient(local_config, transport=transport), interval=60)

    assert keepalive.start() is True
    assert keepalive.running
    assert keepalive.start() is True

    await keepalive.async_stop()

    assert not keepalive.running
    assert transport.requests == []


async def test_loop_ends_itself_when_disabled(
    local_config: ConnectionConfig, transport: FakeTransport
) -> None:
    keepalive = SessionKeepAlive(
        ControllerClient(local_config, transport=transport),
        interval=0.01,
        is_enabled=lambda: False,
    )
    keepalive.start()

    for _ in range(100):
        if not keepalive.running:
            break
        await asyncio.sleep(0.01)

    assert not keepalive.running
    await keepalive.async_stop()
