from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from services.errors import NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU OS 17_4.1 like Mac OS X) AppleWebKit/536.26 "
    "(KHTML, like Gecko) Version/17.4.1 Mobile/10A5355d Safari/8536.25"
)


def default_headers(client_version: str) -> Dict[str, str]:
    """Headers the service expects from its mobile app."""
    return {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Accept-Encoding": "gzip",
        "Cache-Control": "no-cache",
        "Connection": "Keep-Alive",
        "Content-Type": "application/json;charset=UTF-8",
        "Accept-Language": "en-US",
        "product": "llu.ios",
        "version": client_version,
    }


class HttpTransport:
    """Blocking JSON transport; returns ``(status, body)`` pairs."""

    def __init__(
        self,
        client_version: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout)
        self._client.headers.update(default_headers(client_version))

    def close(self) -> None:
        self._client.close()

    def post(
        self, url: str, headers: Mapping[str, str], body: Any
    ) -> Tuple[int, Optional[Any]]:
        return self._send("POST", url, headers, body)

    def get(self, url: str, headers: Mapping[str, str]) -> Tuple[int, Optional[Any]]:
        return self._send("GET", url, headers, None)

    def _send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
    ) -> Tuple[int, Optional[Any]]:
        try:
            response = self._client.request(
                method, url, headers=dict(headers), json=body
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc
        return response.status_code, self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Optional[Any]:
        if not response.content:
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug(
                "Response body is not JSON",
                extra={"status_code": response.status_code},
            )
            return None
