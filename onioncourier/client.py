"""
Client for the onion courier gateway.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from onioncourier.common.config import Config
from onioncourier.common.models import FileListResponse, OnionStatus

logger = logging.getLogger(__name__)

TOR_SOCKS_PROXY = "socks5h://127.0.0.1:9050"


class CourierClient:
    """Talks to a gateway, keeping the session id between calls.

    To reach a ``.onion`` address pass ``proxies=CourierClient.tor_proxies()``
    (requires ``requests[socks]``).
    """

    def __init__(
        self,
        base_url: str,
        proxies: dict[str, str] | None = None,
        timeout: int = 60,
    ):
        self.base_url = base_url.rstrip("/")
        self.proxies = proxies
        self.timeout = timeout
        self.session_header = Config().SESSION_HEADER
        self.session_id: str | None = None

    @staticmethod
    def tor_proxies(proxy: str = TOR_SOCKS_PROXY) -> dict[str, str]:
        return {"http": proxy, "https": proxy}

    def _headers(self) -> dict[str, str]:
        return {self.session_header: self.session_id} if self.session_id else {}

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        send = requests.get if method == "GET" else requests.post
        r = send(
            f"{self.base_url}{path}",
            headers=self._headers(),
            proxies=self.proxies,
            timeout=self.timeout,
            **kwargs,
        )
        issued = r.headers.get(self.session_header) if r.headers else None
        if issued:
            self.session_id = issued
        r.raise_for_status()
        return r

    def status(self) -> OnionStatus:
        return OnionStatus.model_validate(self._request("GET", "/api/onion").json())

    def login(self, key: str) -> str:
        """Authenticate with the cycle key and remember the session id."""
        data = self._request("POST", "/login", json={"key": key}).json()
        self.session_id = data["session_id"]
        logger.info("Logged in, session %s…", self.session_id[:6])
        return self.session_id

    def list_files(self, path: str | None = None) -> FileListResponse:
        params = {"path": path} if path else None
        r = self._request("GET", "/files", params=params)
        return FileListResponse.model_validate(r.json())

    def cd(self, path: str) -> str:
        return self._request("POST", "/cd", params={"path": path}).json()["cwd"]

    def mkdir(self, path: str) -> str:
        return self._request("POST", "/mkdir", params={"path": path}).json()["created"]

    def cat(self, path: str) -> str:
        return self._request("GET", "/cat", params={"path": path}).text

    def upload(self, path: str, data: bytes) -> str:
        r = self._request("POST", "/upload", params={"path": path}, data=data)
        return r.json()["path"]

    def download(self, path: str) -> bytes:
        return self._request("GET", "/download", params={"path": path}).content

    def delete(self, path: str) -> str:
        return self._request("POST", "/delete", params={"path": path}).json()["deleted"]

    def quit(self) -> None:
        self._request("POST", "/quit")
        self.session_id = None
