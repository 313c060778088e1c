"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import asyncio
import inspect
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest  # noqa: E402

from unifi_controller_client.config import ConnectionConfig  # noqa: E402

from .helpers import FakeClock, FakeTransport  # noqa: E402


def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    """Execute async test functions without requiring pytest-asyncio."""

    if inspect.iscoroutinefunction(pyfuncitem.obj):
        sig = inspect.signature(pyfuncitem.obj)
        kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in sig.parameters
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**kwargs))
        return True
    return None


@pytest.fixture
def local_config() -> ConnectionConfig:
    return ConnectionConfig.local("https://unifi.local", "admin", "secret")


@pytest.fixture
def cloud_config() -> ConnectionConfig:
    return ConnectionConfig.cloud("cloud-key")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Avoid real delays during retry logic tests and record requested delays."""

    delays: list[float] = []

    async def _sleep(delay: float, *args: object, **kwargs: object) -> None:
        delays.append(delay)

    monkeypatch.setattr("asyncio.sleep", _sleep)
    return delays
