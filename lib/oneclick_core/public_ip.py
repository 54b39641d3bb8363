from __future__ import annotations

import logging
from typing import Sequence

import httpx

log = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = (
    "https://ifconfig.me",
    "https://api.ipify.org",
    "https://ipinfo.io/ip",
)
DEFAULT_TIMEOUT = 10.0
PLACEHOLDER = "<server-public-ip>"


def resolve_public_ip(
    endpoints: Sequence[str] = DEFAULT_ENDPOINTS,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.Client | None = None,
) -> str:
    """Return the first non-empty answer among ranked endpoints, or "" when none answers."""
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True, headers={"User-Agent": "curl/8"})
    try:
        for url in endpoints:
            try:
                response = http.get(url, timeout=timeout)
            except httpx.HTTPError as exc:
                log.debug("public ip lookup via %s failed: %s", url, exc)
                continue
            if response.status_code != 200:
                log.debug("public ip lookup via %s returned HTTP %s", url, response.status_code)
                continue
            value = response.text.strip()
            if value:
                return value.splitlines()[0].strip()
    finally:
        if owns_client:
            http.close()
    return ""
