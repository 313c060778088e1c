"""Background task keeping a local controller session alive."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Callable, Optional

from .const import DEFAULT_KEEPALIVE_INTERVAL

if TYPE_CHECKING:  # pragma: no cover - for typing only
    from .client import ControllerClient

_LOGGER = logging.getLogger(__name__)


class SessionKeepAlive:
    """Periodically confirm or renew the session of a local controller.

    The loop runs as one asyncio task owned by this object. It waits on an
    event between ticks, so :meth:`async_stop` ends it immediately. Ticks
    only log failures; nothing is raised out of the loop.
    """

    def __init__(
        self,
        client: "ControllerClient",
        *,
        interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        is_enabled: Callable[[], bool] = lambda: True,
    ) -> None:
        self._client = client
        self._interval = interval
        self._is_enabled = is_enabled
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the loop on the running event loop; returns True if started."""

        if self.running:
            return True
        config = self._client.config
        if config.is_cloud:
            _LOGGER.debug("Keep-alive not needed for the UniFi Site Manager API")
            return False
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._task = asyncio.get_running_loop().create_task(self._run(stop_event))
        _LOGGER.debug("Keep-alive started (every %ss)", self._interval)
        return True

    async def async_stop(self) -> None:
        task, stop_event = self._task, self._stop_event
        self._task = None
        self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _LOGGER.debug("Keep-alive stopped")

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), self._interval)
            except asyncio.TimeoutError:
                pass
            else:
                return
            if not await self.async_tick():
                return

    async def async_tick(self) -> bool:
        """Run one keep-alive check; returns False when the loop should end."""

        if not self._is_enabled():
            _LOGGER.debug("Keep-alive stopping: statistics collection disabled")
            return False
        config = self._client.config
        if config.is_cloud or not config.is_complete:
            _LOGGER.debug("Keep-alive stopping: no local controller configured")
            return False

        if not self._client.is_authenticated():
            await self._relogin("session missing or expired")
            return True
        try:
            await self._client.get_system_info()
        except Exception as err:
            await self._relogin(f"check failed: {err}")
        else:
            _LOGGER.debug("Keep-alive: session alive")
        return True

    async def _relogin(self, reason: str) -> None:
        sessions = self._client.sessions
        _LOGGER.debug("Keep-alive re-authenticating (%s)", reason)
        try:
            await sessions.reauthenticate(sessions.session)
        except Exception as err:
            _LOGGER.error("Keep-alive re-authentication failed: %s", err)


__all__ = ["SessionKeepAlive"]
