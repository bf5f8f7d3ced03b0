"""Minimal async Lark Open API client on httpx.

Covers what the channel needs: tenant token, bot info, message create/reply,
reactions, chat listing. Every call raises :class:`LarkApiError` unless Lark
answers ``code == 0``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..core.channel.errors import ChannelSendError

logger = logging.getLogger(__name__)

LARK_BASE_URL = "https://open.larksuite.com"
_TOKEN_REFRESH_MARGIN = 60.0


class LarkApiError(ChannelSendError):
    """Lark answered with a non-zero ``code`` or a non-2xx status."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class LarkClient:
    def __init__(
        self,
        app_id: str,
        app_secret: str,
        base_url: str = LARK_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._app_id = app_id
        self._app_secret = app_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._token = None
        self._token_expires_at = 0.0

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _tenant_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        data = await self._call(
            "POST",
            "/open-apis/auth/v3/tenant_access_token/internal",
            json={"app_id": self._app_id, "app_secret": self._app_secret},
            auth=False,
        )
        token = str(data.get("tenant_access_token") or "")
        if not token:
            raise LarkApiError("tenant_access_token missing from Lark response")
        expire = float(data.get("expire") or 7200)
        self._token = token
        self._token_expires_at = time.monotonic() + max(expire - _TOKEN_REFRESH_MARGIN, 0.0)
        return token

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Dict[str, Any]:
        if self._client is None:
            raise LarkApiError("Lark client is not open")
        headers = {}
        if auth:
            headers["Authorization"] = f"Bearer {await self._tenant_token()}"
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise LarkApiError(f"{method} {path}: {exc}") from exc
        try:
            data = resp.json()
        except ValueError:
            raise LarkApiError(f"{method} {path}: HTTP {resp.status_code}, non-JSON body") from None
        code = data.get("code", 0) if isinstance(data, dict) else None
        if resp.status_code >= 400 or code != 0:
            msg = data.get("msg", "") if isinstance(data, dict) else ""
            raise LarkApiError(f"{method} {path}: HTTP {resp.status_code}, code={code}, msg={msg}", code=code)
        return data

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def get_bot_info(self) -> Dict[str, Any]:
        data = await self._call("GET", "/open-apis/bot/v3/info")
        return data.get("bot") or {}

    async def create_message(self, chat_id: str, msg_type: str, content: str) -> Dict[str, Any]:
        return await self._call(
            "POST",
            "/open-apis/im/v1/messages",
            params={"receive_id_type": "chat_id"},
            json={"receive_id": chat_id, "msg_type": msg_type, "content": content},
        )

    async def reply_message(self, message_id: str, msg_type: str, content: str) -> Dict[str, Any]:
        return await self._call(
            "POST",
            f"/open-apis/im/v1/messages/{message_id}/reply",
            json={"msg_type": msg_type, "content": content},
        )

    async def add_reaction(self, message_id: str, emoji_type: str) -> Dict[str, Any]:
        return await self._call(
            "POST",
            f"/open-apis/im/v1/messages/{message_id}/reactions",
            json={"reaction_type": {"emoji_type": emoji_type}},
        )

    async def list_chats(self, page_token: Optional[str] = None, page_size: int = 100) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page_size": page_size}
        if page_token:
            params["page_token"] = page_token
        data = await self._call("GET", "/open-apis/im/v1/chats", params=params)
        return data.get("data") or {}
