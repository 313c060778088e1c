from __future__ import annotations

import socket
import ssl
from types import SimpleNamespace
from typing import Any, Optional

import aiohttp
import pytest
import requests
from requests.structures import CaseInsensitiveDict

from unifi_controller_client.errors import (
    ConnectionRefused,
    DnsResolutionFailed,
    TlsError,
    TransportError,
    TransportErrorKind,
    TransportTimeout,
)
from unifi_controller_client.transport import (
    CloudTransport,
    LocalTransport,
    RawResponse,
    Request,
    classify_transport_error,
)

URL = "https://unifi.local/api/login"


def _chained(outer_cls: type[BaseException], inner: BaseException) -> BaseException:
    try:
        try:
            raise inner
        except BaseException as err:
            raise outer_cls("wrapped failure") from err
    except BaseException as outer:
        return outer


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (
            _chained(requests.exceptions.ConnectionError, socket.gaierror(-2, "lookup")),
            DnsResolutionFailed,
        ),
        (
            requests.exceptions.ConnectionError(ConnectionRefusedError(111, "refused")),
            ConnectionRefused,
        ),
        (_chained(requests.exceptions.ConnectionError, ssl.SSLError(1, "bad cert")), TlsError),
        (requests.exceptions.SSLError("certificate verify failed"), TlsError),
        (requests.exceptions.ReadTimeout("read"), TransportTimeout),
        (aiohttp.ServerTimeoutError("slow"), TransportTimeout),
        (Exception("Name or service not known"), DnsResolutionFailed),
        (Exception("[Errno 111] ECONNREFUSED"), ConnectionRefused),
    ],
)
def test_classify_transport_error(error: BaseException, expected: type) -> None:
    classified = classify_transport_error(error, URL)

    assert type(classified) is expected
    assert classified.url == URL


def test_classify_unknown_failure_is_generic() -> None:
    classified = classify_transport_error(ValueError("boom"), URL)

    assert type(classified) is TransportError
    assert classified.kind is TransportErrorKind.OTHER
    assert str(classified).startswith(f"Failed to connect to {URL}:")


def test_refused_message_carries_remediation() -> None:
    error = ConnectionRefused(URL, "refused")

    assert "check the port" in str(error)
    assert "(refused)" in str(error)


def test_raw_response_headers_are_case_insensitive() -> None:
    response = RawResponse(status=429, headers={"Retry-After": "7", "X-CSRF-Token": "t"})

    assert response.header("retry-after") == "7"
    assert response.header("x-csrf-token") == "t"
    assert response.retry_after == 7.0
    assert not response.ok


class FakeRawHeaders:
    def __init__(self, cookies: list[str]) -> None:
        self._cookies = cookies

    def getlist(self, name: str) -> list[str]:
        return list(self._cookies) if name.lower() == "set-cookie" else []


class FakeRequestsResponse:
    def __init__(self, status: int, text: str = "", cookies: Optional[list[str]] = None) -> None:
        self.status_code = status
        self.text = text
        self.url = URL
        self.headers = CaseInsensitiveDict({"Content-Type": "application/json"})
        self.raw = SimpleNamespace(headers=FakeRawHeaders(cookies or []))


class FakeRequestsSession:
    def __init__(
        self,
        response: Optional[FakeRequestsResponse] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.cookies = requests.cookies.RequestsCookieJar()
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False
        self._response = response
        self._error = error

    def request(self, method: str, url: str, **kwargs: Any) -> FakeRequestsResponse:
        self.calls.append((method, url, kwargs))
        self.cookies.set("unifises", "from-jar")
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response

    def close(self) -> None:
        self.closed = True


async def test_local_transport_sends_per_connection_options() -> None:
    session = FakeRequestsSession(
        FakeRequestsResponse(200, '{"ok": true}', cookies=["a=1; Path=/", "b=2; HttpOnly"])
    )
    transport = LocalTransport(verify_ssl=False, timeout=4, session=session)  # type: ignore[arg-type]

    response = await transport.send(
        Request("POST", URL, headers={"Accept": "application/json"}, json={"username": "u"})
    )

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", URL)
    assert kwargs["verify"] is False
    assert kwargs["allow_redirects"] is False
    assert kwargs["timeout"] == 4
    assert kwargs["json"] == {"username": "u"}
    assert response.status == 200
    assert response.set_cookies == ("a=1; Path=/", "b=2; HttpOnly")
    assert response.text == '{"ok": true}'
    # Credentials are never kept in the requests cookie jar.
    assert len(session.cookies) == 0

    await transport.close()
    assert session.closed


async def test_local_transport_classifies_failures() -> None:
    session = FakeRequestsSession(
        error=requests.exceptions.ConnectionError(ConnectionRefusedError(111, "refused"))
    )
    transport = LocalTransport(session=session)  # type: ignore[arg-type]

    with pytest.raises(ConnectionRefused):
        await transport.send(Request("GET", URL))
    assert len(session.cookies) == 0


class DummyResponse:
    def __init__(self, status: int, text: str = "{}", headers: Optional[dict[str, str]] = None) -> None:
        self.status = status
        self._text = text
        self.headers = headers or {}
        self.url = "https://api.ui.com/v1/sites"

    async def __aenter__(self) -> "DummyResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def text(self) -> str:
        return self._text


class DummySession:
    closed = False

    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.kwargs: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> DummyResponse:
        self.kwargs.append(kwargs)
        if not self._outcomes:
            raise RuntimeError("No more responses queued")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def test_cloud_transport_honours_retry_after(recorded_sleeps: list[float]) -> None:
    session = DummySession(
        [DummyResponse(429, headers={"Retry-After": "2"}), DummyResponse(200, '{"data": []}')]
    )
    transport = CloudTransport(session)  # type: ignore[arg-type]

    response = await transport.send(Request("GET", "https://api.ui.com/v1/sites"))

    assert response.status == 200
    assert recorded_sleeps == [2.0]
    assert session.kwargs[0]["ssl"] is None


async def test_cloud_transport_returns_last_server_error(recorded_sleeps: list[float]) -> None:
    session = DummySession([DummyResponse(503) for _ in range(4)])
    transport = CloudTransport(session, verify_ssl=False)  # type: ignore[arg-type]

    response = await transport.send(Request("GET", "https://api.ui.com/v1/sites"))

    assert response.status == 503
    assert len(session.kwargs) == 4
    assert recorded_sleeps == [0.5, 1.0, 2.0]
    assert all(kwargs["ssl"] is False for kwargs in session.kwargs)


async def test_cloud_transport_raises_classified_error(recorded_sleeps: list[float]) -> None:
    session = DummySession([aiohttp.ServerTimeoutError("slow") for _ in range(4)])
    transport = CloudTransport(session)  # type: ignore[arg-type]

    with pytest.raises(TransportTimeout):
        await transport.send(Request("GET", "https://api.ui.com/v1/sites"))
    assert len(session.kwargs) == 4


async def test_cloud_transport_does_not_close_borrowed_session() -> None:
    session = DummySession([])
    session.close = None  # type: ignore[attr-defined]
    transport = CloudTransport(session)  # type: ignore[arg-type]

    await transport.close()
