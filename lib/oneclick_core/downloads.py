from __future__ import annotations

import logging
from typing import Sequence

import httpx

from .errors import DependencyInstallError

log = logging.getLogger(__name__)

GITHUB_RAW = "https://raw.githubusercontent.com"
GITHUB_RAW_MIRRORS = ("https://github.moeyy.xyz/https://raw.githubusercontent.com",)


def candidate_urls(url: str, mirrors: Sequence[str] = GITHUB_RAW_MIRRORS) -> list[str]:
    urls = [url]
    if url.startswith(GITHUB_RAW):
        suffix = url[len(GITHUB_RAW) :]
        urls.extend(f"{mirror.rstrip('/')}{suffix}" for mirror in mirrors)
    return urls


def fetch_text(
    url: str,
    *,
    mirrors: Sequence[str] = GITHUB_RAW_MIRRORS,
    timeout: float = 30.0,
    client: httpx.Client | None = None,
) -> str:
    """Download a text file, retrying once per mirror when the direct URL fails."""
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    errors: list[str] = []
    try:
        for candidate in candidate_urls(url, mirrors):
            try:
                response = http.get(candidate, timeout=timeout)
            except httpx.HTTPError as exc:
                errors.append(f"{candidate}: {exc}")
                continue
            if response.status_code == 200 and response.text:
                if candidate != url:
                    log.info("downloaded %s via mirror", url)
                return response.text
            errors.append(f"{candidate}: HTTP {response.status_code}")
    finally:
        if owns_client:
            http.close()
    raise DependencyInstallError(
        f"Failed to download {url}: " + "; ".join(errors),
        hint=f"curl -fL {url}",
    )
