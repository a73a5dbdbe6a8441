"""
HTTP client for the Social Service API

The bearer credential lives in an explicit ClientSession with a login/logout
lifecycle, and is handed to the client instead of being read from ambient
storage.
"""
import httpx
from typing import Any, Dict, List, Optional
import logging

from .domain.relations import RelationAction, RelationState, toggle_action

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Non-2xx response; message is the server's `error` field"""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code


class ClientSession:
    """Holds the bearer token of the signed-in user"""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def login(self, token: str):
        self._token = token

    def logout(self):
        self._token = None

    def headers(self) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}


class SocialClient:
    """Async client with one method per endpoint"""

    def __init__(
        self,
        base_url: str,
        session: Optional[ClientSession] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.session = session or ClientSession()
        self.client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    async def __aenter__(self) -> "SocialClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self.client.request(
            method, path, headers=self.session.headers(), **kwargs
        )
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") or f"Request failed with status {response.status_code}"
            logger.warning(f"{method} {path} failed: {response.status_code} {message}")
            raise APIError(response.status_code, message, body.get("code"))
        return response.json()

    # Profiles
    async def get_profile(self, user_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}")

    async def get_my_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/users/me")

    async def update_profile(self, **fields) -> Dict[str, Any]:
        return await self._request("PUT", "/users/me", json=fields)

    # Follow graph
    async def follow_status(self, user_id: int) -> Dict[str, bool]:
        return await self._request("GET", f"/users/{user_id}/follow-status")

    async def follow(self, user_id: int) -> Dict[str, bool]:
        return await self._request("POST", f"/users/{user_id}/follow")

    async def unfollow(self, user_id: int) -> Dict[str, bool]:
        return await self._request("DELETE", f"/users/{user_id}/follow")

    async def toggle_follow(self, user_id: int) -> Dict[str, bool]:
        """Follow button: cancel or unfollow when related, otherwise request"""
        status = await self.follow_status(user_id)
        state = RelationState.from_flags(status["following"], status["requested"])
        if toggle_action(state) is RelationAction.UNFOLLOW:
            return await self.unfollow(user_id)
        return await self.follow(user_id)

    async def follow_requests(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/users/me/follow-requests")

    async def accept_request(self, request_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/users/follow-requests/{request_id}/accept")

    async def decline_request(self, request_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/users/follow-requests/{request_id}/decline")

    async def followers(self, user_id: int) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/users/{user_id}/followers")

    async def following(self, user_id: int) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/users/{user_id}/following")

    # Messages
    async def send_message(self, to_user_id: int, text: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/messages", json={"toUserId": to_user_id, "text": text}
        )

    async def messages(self, with_user_id: int) -> List[Dict[str, Any]]:
        return await self._request("GET", "/messages", params={"with": with_user_id})

    async def mark_read(self, with_user_id: int) -> Dict[str, Any]:
        return await self._request("POST", "/messages/read", json={"with": with_user_id})

    async def conversations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/messages/conversations")

    async def unread_count(self) -> int:
        data = await self._request("GET", "/messages/unread-count")
        return data["count"]
