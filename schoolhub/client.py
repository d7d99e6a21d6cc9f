"""
Async HTTP client for the SchoolHub API.

Holds the access/refresh pair (cookies plus an Authorization header). A request
answered with 401 triggers one refresh and one retry of the original request;
if the refresh fails the original 401 response is returned unchanged.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
LOGIN_PATH = f"{API_PREFIX}/auth/login"
REFRESH_PATH = f"{API_PREFIX}/auth/refresh"
LOGOUT_PATH = f"{API_PREFIX}/auth/logout"

# Auth endpoints never trigger a refresh-and-retry
_NO_RETRY_PATHS = (LOGIN_PATH, REFRESH_PATH, LOGOUT_PATH)


class SchoolHubClient:
    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=httpx.Timeout(timeout))
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self) -> "SchoolHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _store_tokens(self, body: Dict[str, Any]) -> None:
        self._access_token = body.get("access_token") or self._access_token
        self._refresh_token = body.get("refresh_token") or self._refresh_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        if self._access_token:
            headers.setdefault("Authorization", f"Bearer {self._access_token}")
        return headers

    # ----- auth -----

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._http.post(LOGIN_PATH, json={"email": email, "password": password})
        response.raise_for_status()
        body = response.json()
        self._store_tokens(body)
        return body

    async def refresh(self) -> bool:
        """Exchange the refresh token for a new pair. Returns False when the server refuses."""
        payload = {"refresh_token": self._refresh_token} if self._refresh_token else None
        try:
            response = await self._http.post(REFRESH_PATH, json=payload)
        except httpx.RequestError as exc:
            logger.warning("Token refresh request failed: %s", exc)
            return False
        if response.status_code != 200:
            logger.info("Token refresh rejected with status %s", response.status_code)
            return False
        self._store_tokens(response.json())
        return True

    async def logout(self) -> None:
        await self._http.post(LOGOUT_PATH)
        self._access_token = None
        self._refresh_token = None
        self._http.cookies.clear()

    # ----- generic request with refresh-and-retry -----

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        extra_headers = kwargs.pop("headers", None)
        token_used = self._access_token
        response = await self._http.request(method, url, headers=self._headers(extra_headers), **kwargs)
        if response.status_code != 401 or url in _NO_RETRY_PATHS:
            return response

        async with self._refresh_lock:
            # Another request may already have refreshed while this one waited
            refreshed = self._access_token != token_used or await self.refresh()
        if not refreshed:
            return response
        return await self._http.request(method, url, headers=self._headers(extra_headers), **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    # ----- students -----

    async def create_student(self, data: Dict[str, Any]) -> httpx.Response:
        return await self.post(f"{API_PREFIX}/create-student", json=data)

    async def list_students(self, **params: Any) -> httpx.Response:
        return await self.get(f"{API_PREFIX}/students", params={k: v for k, v in params.items() if v is not None})

    async def get_student(self, student_id: str) -> httpx.Response:
        return await self.get(f"{API_PREFIX}/student/{student_id}")

    async def promote_student(self, student_id: str, data: Dict[str, Any]) -> httpx.Response:
        return await self.put(f"{API_PREFIX}/promote-student/{student_id}", json=data)

    async def bulk_promote_students(self, data: Dict[str, Any]) -> httpx.Response:
        return await self.post(f"{API_PREFIX}/bulk-promote-students", json=data)

    async def graduate_students(self, data: Dict[str, Any]) -> httpx.Response:
        return await self.post(f"{API_PREFIX}/graduate-students", json=data)

    async def transfer_student(self, student_id: str, data: Dict[str, Any]) -> httpx.Response:
        return await self.put(f"{API_PREFIX}/transfer-student/{student_id}", json=data)

    async def promotion_preview(self, **params: Any) -> httpx.Response:
        return await self.get(
            f"{API_PREFIX}/promotion-preview", params={k: v for k, v in params.items() if v is not None}
        )
