"""Issue authenticated requests with a single transparent session renewal."""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from .detector import Deployment
from .errors import (
    AuthenticationError,
    SessionExpiredError,
    UpstreamProtocolError,
    UpstreamStatusError,
)
from .session import Session, SessionManager
from .transport import RawResponse, Request
from .utils import endpoint_label, shorten

_LOGGER = logging.getLogger(__name__)

_OK_CODES = {"ok", "success"}
# Classic controllers sometimes answer an expired cookie with HTTP 200 and this code.
_LOGIN_REQUIRED = "api.err.LoginRequired"


def decode_payload(response: RawResponse) -> Any:
    """Decode a controller response body and strip the UniFi envelope."""

    text = response.text
    if not text or not text.strip():
        return None
    label = endpoint_label(response.url)
    try:
        payload = json.loads(text)
    except ValueError as err:
        raise UpstreamProtocolError(
            f"UniFi endpoint {label} returned a body that is not JSON",
            url=response.url,
            body=shorten(text, 200),
        ) from err

    if isinstance(payload, dict):
        meta = payload.get("meta")
        if isinstance(meta, dict):
            rc = meta.get("rc")
            if rc and rc not in _OK_CODES:
                message = meta.get("msg") or rc
                raise UpstreamProtocolError(
                    f"UniFi controller returned error for {label}: {message}",
                    url=response.url,
                    body=shorten(text, 200),
                )
        if "data" in payload:
            return payload["data"]
    return payload


def _is_login_required(response: RawResponse) -> bool:
    return _LOGIN_REQUIRED in (response.text or "")


class RequestExecutor:
    """Run one logical request against the controller.

    A local 401/403 triggers exactly one re-authentication and one retry;
    a second rejection is terminal. Cloud API keys cannot be renewed, so a
    cloud 401/403 is terminal immediately.
    """

    def __init__(self, sessions: SessionManager) -> None:
        self._sessions = sessions

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    async def execute(
        self,
        path: str,
        *,
        method: str = "GET",
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        session = await self._sessions.ensure_authenticated()
        try:
            return await self._send(session, path, method, json, params, timeout)
        except SessionExpiredError as err:
            _LOGGER.debug("%s; re-authenticating once", err)

        session = await self._sessions.reauthenticate(session)
        try:
            return await self._send(session, path, method, json, params, timeout)
        except SessionExpiredError as err:
            await self._sessions.invalidate(session)
            raise AuthenticationError(
                f"UniFi controller rejected the renewed session for {endpoint_label(err.url)} "
                f"(HTTP {err.status_code}); the account may lack access to this site",
                status_code=err.status_code,
                deployment=session.deployment,
                url=err.url,
            ) from err

    async def _send(
        self,
        session: Session,
        path: str,
        method: str,
        payload: Any,
        params: Optional[Mapping[str, Any]],
        timeout: Optional[float],
    ) -> Any:
        url = self._sessions.build_url(path, session.deployment)
        label = endpoint_label(url)
        _LOGGER.debug("UniFi request %s %s initiated", method, label)
        response = await self._sessions.transport.send(
            Request(
                method,
                url,
                headers=session.headers(),
                json=payload,
                params=params,
                timeout=timeout or self._sessions.config.timeout,
            )
        )
        status = response.status
        cloud = session.deployment is Deployment.CLOUD

        if status in (401, 403):
            _LOGGER.debug(
                "UniFi request %s %s rejected (status=%s, duration_ms=%d)",
                method,
                label,
                status,
                response.elapsed_ms,
            )
            if cloud:
                raise AuthenticationError(
                    f"UniFi Site Manager rejected the API key (HTTP {status}); "
                    "check that the key is valid and has not been revoked",
                    status_code=status,
                    deployment=session.deployment,
                    url=url,
                )
            raise SessionExpiredError(status, url)

        if not response.ok:
            body = shorten(response.text, 200)
            retry_after = response.retry_after if status == 429 else None
            log_func = _LOGGER.debug if status == 404 else _LOGGER.warning
            log_func(
                "UniFi request %s %s failed (status=%s, duration_ms=%d, body=%s)",
                method,
                label,
                status,
                response.elapsed_ms,
                body,
            )
            message = f"UniFi API call {method} {label} failed with HTTP {status}"
            if retry_after is not None:
                message = f"{message}; retry in {retry_after:.0f}s"
            raise UpstreamStatusError(
                message,
                status_code=status,
                url=url,
                body=body,
                retry_after=retry_after,
            )

        _LOGGER.debug(
            "UniFi request %s %s succeeded (status=%s, duration_ms=%d)",
            method,
            label,
            status,
            response.elapsed_ms,
        )
        try:
            return decode_payload(response)
        except UpstreamProtocolError:
            if not cloud and _is_login_required(response):
                raise SessionExpiredError(status, url) from None
            raise


__all__ = ["RequestExecutor", "decode_payload"]
