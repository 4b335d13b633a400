"""Async HTTP client for the meeting REST surface."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


class ClubhouseAPIError(Exception):
    """A non-2xx response, carrying the server's `detail` message."""

    def __init__(self, status_code: int, detail: Any) -> None:
        self.status_code = status_code
        if isinstance(detail, list):
            detail = "; ".join(str(item) for item in detail)
        self.detail = str(detail) if detail is not None else f"HTTP {status_code}"
        super().__init__(f"{status_code}: {self.detail}")


class ClubhouseClient:
    """
    Thin wrapper over `httpx.AsyncClient`. Authentication rides on the
    `access_token` cookie set by `login()`, kept in the client's cookie jar.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "ClubhouseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            try:
                body = response.json()
                detail = body.get("detail") if isinstance(body, dict) else body
            except ValueError:
                detail = response.text or None
            logger.debug("%s %s failed with %s: %s", method, path, response.status_code, detail)
            raise ClubhouseAPIError(response.status_code, detail)
        if not response.content:
            return None
        return response.json()

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/api/auth/token", json={"username": username, "password": password}
        )

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")

    async def create_meeting(
        self,
        club_id: str,
        title: str,
        *,
        description: Optional[str] = None,
        scheduled_at: Optional[str] = None,
        max_participants: Optional[int] = None,
        is_voice_only: bool = False,
    ) -> Dict[str, Any]:
        body = {
            "title": title,
            "description": description,
            "scheduledAt": scheduled_at,
            "maxParticipants": max_participants,
            "isVoiceOnly": is_voice_only,
        }
        return await self._request(
            "POST",
            f"/api/clubs/{club_id}/meetings",
            json={key: value for key, value in body.items() if value is not None},
        )

    async def list_club_meetings(self, club_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/clubs/{club_id}/meetings")

    async def get_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/meetings/{meeting_id}")

    async def start_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/meetings/{meeting_id}/start")

    async def end_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/meetings/{meeting_id}/end")

    async def cancel_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/meetings/{meeting_id}/cancel")

    async def join_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/meetings/{meeting_id}/join")

    async def leave_meeting(self, meeting_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/meetings/{meeting_id}/leave")

    async def list_messages(
        self, meeting_id: str, after: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params = {"after": after} if after is not None else None
        return await self._request(
            "GET", f"/api/meetings/{meeting_id}/messages", params=params
        )

    async def send_message(self, meeting_id: str, content: str) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/api/meetings/{meeting_id}/messages", json={"content": content}
        )
