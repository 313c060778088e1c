"""Detect which login variant a UniFi controller speaks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import ConnectionConfig
from .const import (
    CLASSIC_LOGIN_PATH,
    CLASSIC_LOGOUT_PATH,
    GATEWAY_LOGIN_PATH,
    GATEWAY_LOGOUT_PATH,
    GATEWAY_PATH_PREFIX,
)
from .errors import TransportError
from .transport import RawResponse, Request, Transport
from .utils import endpoint_label

_LOGGER = logging.getLogger(__name__)


class Deployment(str, Enum):
    """Controller flavour, selecting login and resource paths."""

    GATEWAY = "gateway"
    CLASSIC = "classic"
    CLOUD = "cloud"
    UNKNOWN = "unknown"

    @property
    def login_path(self) -> str:
        if self is Deployment.GATEWAY:
            return GATEWAY_LOGIN_PATH
        return CLASSIC_LOGIN_PATH

    @property
    def logout_path(self) -> str:
        if self is Deployment.GATEWAY:
            return GATEWAY_LOGOUT_PATH
        return CLASSIC_LOGOUT_PATH

    @property
    def path_prefix(self) -> str:
        if self is Deployment.GATEWAY:
            return GATEWAY_PATH_PREFIX
        return ""


def login_payload(config: ConnectionConfig, deployment: Deployment) -> dict[str, object]:
    payload: dict[str, object] = {
        "username": config.username,
        "password": config.password,
    }
    if deployment is Deployment.GATEWAY:
        payload["rememberMe"] = True
    return payload


@dataclass(frozen=True, slots=True)
class Detection:
    """Outcome of a detection probe.

    ``response`` is the successful UniFi OS login response, which already
    carries a session cookie and can be used as the first login.
    """

    deployment: Deployment
    response: Optional[RawResponse] = None


class DeploymentDetector:
    """Probe a controller to classify its deployment."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def probe(self, config: ConnectionConfig) -> Detection:
        if config.is_cloud:
            return Detection(Deployment.CLOUD)

        url = f"{config.api_base_url}{GATEWAY_LOGIN_PATH}"
        label = endpoint_label(url)
        request = Request(
            "POST",
            url,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            json=login_payload(config, Deployment.GATEWAY),
            timeout=config.timeout,
        )
        try:
            response = await self._transport.send(request)
        except TransportError as err:
            # Many classic controllers do not expose the UniFi OS path at all.
            _LOGGER.debug(
                "UniFi OS login probe %s failed at network level (%s); assuming classic controller",
                label,
                err.kind.value,
            )
            return Detection(Deployment.CLASSIC)

        if response.ok and response.set_cookies:
            _LOGGER.debug("UniFi OS login probe %s succeeded; gateway deployment", label)
            return Detection(Deployment.GATEWAY, response)

        _LOGGER.debug(
            "UniFi OS login probe %s returned HTTP %s; assuming classic controller",
            label,
            response.status,
        )
        return Detection(Deployment.CLASSIC)

    async def detect(self, config: ConnectionConfig) -> Deployment:
        return (await self.probe(config)).deployment


__all__ = ["Deployment", "DeploymentDetector", "Detection", "login_payload"]
