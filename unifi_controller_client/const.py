"""Constants for the UniFi controller client."""
from __future__ import annotations

import re
from typing import Final

DEFAULT_SITE: Final = "default"
DEFAULT_TIMEOUT: Final = 10
DEFAULT_VERIFY_SSL: Final = True
# Local controllers drop idle sessions; renew well before that happens.
DEFAULT_SESSION_TTL: Final = 15 * 60
DEFAULT_KEEPALIVE_INTERVAL: Final = 2 * 60

CONF_MODE = "mode"
CONF_URL = "url"
CONF_USERNAME = "username"
# Placeholder configuration keys, not secrets.
CONF_PASSWORD = "password"  # nosec B105
CONF_API_KEY = "api_key"
CONF_SITE = "site"
CONF_VERIFY_SSL = "verify_ssl"
CONF_TIMEOUT = "timeout"

API_CLOUD_BASE_URL: Final = "https://api.ui.com/v1"
CLOUD_HOST_PATTERN: Final = re.compile(r"^(?:[a-z0-9-]+\.)*ui\.com$", re.IGNORECASE)

# UniFi OS consoles (UDM, UCG, UX, Cloud Key Gen2+)
GATEWAY_LOGIN_PATH: Final = "/api/auth/login"
GATEWAY_LOGOUT_PATH: Final = "/api/auth/logout"
GATEWAY_PATH_PREFIX: Final = "/proxy/network"
# Classic Network application (self-hosted, port 8443)
CLASSIC_LOGIN_PATH: Final = "/api/login"
CLASSIC_LOGOUT_PATH: Final = "/api/logout"

HEADER_API_KEY: Final = "X-API-Key"
HEADER_CSRF: Final = "X-CSRF-Token"
HEADER_RETRY_AFTER: Final = "Retry-After"

UNKNOWN_DEVICE_NAME: Final = "Unknown Device"
