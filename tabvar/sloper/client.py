"""HTTP client for the Sloper guidebook API.

A client instance is one sync session: it logs in once on first use and
reuses that bearer token for every request it makes. Nothing is retried;
any failure raises and aborts the run.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from tabvar import config
from tabvar.sloper.exceptions import AuthError, FetchError

logger = logging.getLogger("tabvar.sloper")

AUTH_PATH = "/DesktopModules/JwtAuth/API/mobile/login"
CRAGS_PATH = "/API/SloperPlatform/CragTest/"
ROUTES_PATH = "/API/SloperPlatform/Route/"
ISSUES_PATH = "/API/SloperPlatform/RouteIssues/"


class SloperClient:
    """Async Sloper API client, used as ``async with SloperClient() as client``."""

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url is not None else config.SLOPER_URL
        self._username = username if username is not None else config.SLOPER_ID
        self._password = password if password is not None else config.SLOPER_P
        self._token: str | None = None
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.SLOPER_TIMEOUT_SECONDS,
            headers={"Accept": "*/*"},
            transport=transport,
        )

    async def __aenter__(self) -> SloperClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def authenticate(self) -> str:
        """Exchange the configured credentials for a bearer token."""
        if self._token:
            return self._token
        try:
            response = await self._http.post(AUTH_PATH, json={"u": self._username, "p": self._password})
        except httpx.HTTPError as e:
            raise AuthError(f"Sloper auth request failed: {e}") from e
        if not response.is_success:
            raise AuthError(f"Sloper auth failed with HTTP {response.status_code}")
        try:
            token = response.json().get("accessToken")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise AuthError("No access token found in Sloper auth response")
        self._token = token
        logger.info("Authenticated against Sloper")
        return token

    async def _request_data(self, method: str, path: str, params: dict[str, str] | None = None) -> list[dict]:
        token = await self.authenticate()
        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise FetchError(f"Sloper request {method} {path} failed: {e}") from e
        if not response.is_success:
            raise FetchError(
                f"Sloper request {method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"Sloper request {method} {path} returned invalid JSON") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise FetchError(f"Sloper request {method} {path} returned no data array")
        return data

    async def fetch_crags(self, guidebook_id: str) -> list[dict]:
        return await self._request_data("GET", CRAGS_PATH, {"isEnabled": "1", "guidebookId": str(guidebook_id)})

    async def fetch_routes(self, external_sector_id: str) -> list[dict]:
        return await self._request_data("GET", ROUTES_PATH, {"isEnabled": "1", "sectorId": str(external_sector_id)})

    async def fetch_issues(self) -> list[dict]:
        return await self._request_data("POST", ISSUES_PATH)
