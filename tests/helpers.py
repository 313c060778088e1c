"""Test doubles for the transport layer."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from typing import Any, Callable, Iterable, Optional, Union

from unifi_controller_client.errors import ConnectionRefused
from unifi_controller_client.transport import RawResponse, Request

Responder = Union[RawResponse, BaseException, Callable[[Request], RawResponse]]


def json_response(
    payload: Any = None,
    *,
    status: int = 200,
    headers: Optional[dict[str, str]] = None,
    cookies: Iterable[str] = (),
) -> RawResponse:
    return RawResponse(
        status=status,
        headers=headers or {"Content-Type": "application/json"},
        set_cookies=tuple(cookies),
        text="" if payload is None else json.dumps(payload),
    )


def unifi_response(data: Any, *, status: int = 200) -> RawResponse:
    """Wrap ``data`` in the classic controller envelope."""

    return json_response({"meta": {"rc": "ok"}, "data": data}, status=status)


def text_response(text: str, *, status: int = 200) -> RawResponse:
    return RawResponse(status=status, headers={"Content-Type": "text/html"}, text=text)


def login_ok(
    cookie: str = "unifises=abc123", *, csrf: Optional[str] = None
) -> RawResponse:
    headers = {"Content-Type": "application/json"}
    if csrf:
        headers["X-CSRF-Token"] = csrf
    return json_response(
        {"meta": {"rc": "ok"}, "data": []},
        headers=headers,
        cookies=[f"{cookie}; Path=/; Secure; HttpOnly"],
    )


def status_response(status: int, headers: Optional[dict[str, str]] = None) -> RawResponse:
    return json_response(
        {"meta": {"rc": "error", "msg": f"http {status}"}}, status=status, headers=headers
    )


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Answer requests from a table keyed by method and URL suffix.

    Each route holds a queue of responders; the last one is reused once the
    queue is drained. Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.requests: list[Request] = []
        self.closed = False
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def add(self, method: str, suffix: str, *responders: Responder) -> "FakeTransport":
        self._routes[(method.upper(), suffix)] = list(responders)
        return self

    def calls(self, method: str, suffix: str) -> int:
        return sum(
            1
            for request in self.requests
            if request.method == method.upper() and request.url.endswith(suffix)
        )

    def _match(self, request: Request) -> Optional[list[Responder]]:
        best: Optional[tuple[int, list[Responder]]] = None
        for (method, suffix), responders in self._routes.items():
            if method == request.method.upper() and request.url.endswith(suffix):
                if best is None or len(suffix) > best[0]:
                    best = (len(suffix), responders)
        return best[1] if best else None

    async def send(self, request: Request) -> RawResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        responders = self._match(request)
        if not responders:
            return dataclasses.replace(json_response(status=404), url=request.url)
        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        if isinstance(responder, BaseException):
            raise responder
        if callable(responder):
            responder = responder(request)
        if not responder.url:
            responder = dataclasses.replace(responder, url=request.url)
        return responder

    async def close(self) -> None:
        self.closed = True


# Classic controllers refuse or drop the UniFi OS login path.
REFUSED = ConnectionRefused("https://unifi.local/api/auth/login", "refused")
