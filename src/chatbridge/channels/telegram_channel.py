"""TelegramChannel: Bot API over long polling.

Updates from ``getUpdates`` go straight into the shared inbound pipeline;
replies are rendered to Telegram text + entities, so no parse_mode escaping
is ever needed.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from ..core.channel.base import BaseChannel, to_iso_timestamp
from ..core.channel.errors import ChannelConfigError, ChannelSendError
from ..core.channel.models import ChannelCapabilities, InboundEvent, Mention
from ..core.render import render_markdown, split_text, to_telegram_entities

logger = logging.getLogger(__name__)

TELEGRAM_MSG_LIMIT = 4096
TELEGRAM_API_BASE = "https://api.telegram.org"

_AT_TAG_RE = re.compile(r'<at user_id="[^"]*">(.*?)</at>')


class TelegramChannel(BaseChannel):
    """Telegram Bot channel (long-polling)."""

    name = "telegram"
    jid_prefix = "tg:"

    def __init__(
        self,
        on_message,
        on_chat_metadata,
        registered_groups,
        *,
        bot_token: str,
        assistant_name: str,
        api_base: str = TELEGRAM_API_BASE,
        poll: bool = True,
        poll_timeout: int = 30,
        **kwargs: Any,
    ) -> None:
        if not bot_token:
            raise ChannelConfigError("Telegram channel requires bot_token")
        kwargs.setdefault("capabilities", ChannelCapabilities(
            typing=True,
            reactions=False,
            metadata_sync=False,
            text_chunk_limit=TELEGRAM_MSG_LIMIT,
        ))
        super().__init__(
            on_message,
            on_chat_metadata,
            registered_groups,
            assistant_name=assistant_name,
            **kwargs,
        )
        self._base_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self._poll = poll
        self._poll_timeout = poll_timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._bot_username: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await super().connect()
        # polling starts only once ingest accepts events
        if self._poll and self._poll_task is None:
            self._poll_task = asyncio.create_task(self._polling_loop())

    async def _open_transport(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))

    async def _close_transport(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _fetch_bot_id(self) -> Optional[str]:
        me = await self._call("getMe", {})
        self._bot_username = me.get("username")
        bot_id = me.get("id")
        return str(bot_id) if bot_id is not None else None

    # ------------------------------------------------------------------
    # Long-polling loop
    # ------------------------------------------------------------------

    async def _polling_loop(self) -> None:
        offset = 0
        while self._connected:
            try:
                updates = await self._call(
                    "getUpdates", {"offset": offset, "timeout": self._poll_timeout},
                )
                for update in updates or []:
                    offset = update["update_id"] + 1
                    await self.ingest(update)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Telegram polling error: %s", exc)
                await asyncio.sleep(5)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def parse_event(self, raw_event: Any) -> Optional[InboundEvent]:
        if not isinstance(raw_event, dict):
            return None
        msg = raw_event.get("message")
        if not isinstance(msg, dict):
            return None
        chat = msg.get("chat") or {}
        chat_id = str(chat.get("id", ""))
        sender = msg.get("from") or {}
        text = msg.get("text")
        message_id = str(msg.get("message_id", ""))
        date = msg.get("date")

        return InboundEvent(
            chat_id=chat_id,
            message_id=message_id,
            msg_type="text" if isinstance(text, str) else "other",
            content=text,
            sender_id=str(sender.get("id", "")),
            timestamp=to_iso_timestamp(int(date) * 1000 if date else None),
            is_group=chat.get("type") != "private",
            sender_name=sender.get("first_name") or sender.get("username") or "",
            chat_name=chat.get("title") or chat.get("first_name"),
            mentions=self._extract_mentions(text or "", msg.get("entities") or []),
            # message ids are only unique within a chat
            dedup_key=f"{chat_id}:{message_id}" if message_id else None,
        )

    def _extract_mentions(self, text: str, entities: List[Dict[str, Any]]) -> List[Mention]:
        """Map ``mention``/``text_mention`` entities to :class:`Mention`.

        Entity offsets count UTF-16 code units.
        """
        encoded = text.encode("utf-16-le")
        mentions: List[Mention] = []
        for ent in entities:
            etype = ent.get("type")
            if etype not in ("mention", "text_mention"):
                continue
            start = ent.get("offset", 0) * 2
            end = start + ent.get("length", 0) * 2
            key = encoded[start:end].decode("utf-16-le", errors="ignore")
            if not key:
                continue
            if etype == "text_mention":
                user = ent.get("user") or {}
                mentions.append(Mention(key=key, user_id=str(user.get("id", "")), name=user.get("first_name", "")))
            elif self._bot_username and key.lstrip("@").lower() == self._bot_username.lower():
                mentions.append(Mention(key=key, user_id=self._bot_id or "", name=self._bot_username))
        return mentions

    def _parse_text(self, event: InboundEvent) -> Optional[str]:
        text = event.content
        return text.strip() if isinstance(text, str) else None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _send_rich(self, jid: str, chunk: str, reply_to: Optional[str]) -> None:
        text, entities = to_telegram_entities(render_markdown(chunk))
        if not text:
            return
        payload: Dict[str, Any] = {"chat_id": self.chat_id_from_jid(jid), "text": text}
        if entities:
            payload["entities"] = entities
        if reply_to:
            payload["reply_parameters"] = {"message_id": int(reply_to)}
        await self._call("sendMessage", payload)

    async def _send_plain(self, jid: str, text: str, reply_to: Optional[str]) -> None:
        text = _AT_TAG_RE.sub(r"@\1", text)
        chat_id = self.chat_id_from_jid(jid)
        for i, chunk in enumerate(split_text(text, TELEGRAM_MSG_LIMIT)):
            if not chunk:
                continue
            payload: Dict[str, Any] = {"chat_id": chat_id, "text": chunk}
            if reply_to and i == 0:
                payload["reply_parameters"] = {"message_id": int(reply_to)}
            await self._call("sendMessage", payload)

    async def set_typing(self, jid: str, is_typing: bool) -> None:
        # Telegram clears the indicator by itself after ~5s
        if not is_typing or self._client is None:
            return
        try:
            await self._call("sendChatAction", {"chat_id": self.chat_id_from_jid(jid), "action": "typing"})
        except Exception as exc:
            logger.debug("sendChatAction failed for %s: %s", jid, exc)

    # ------------------------------------------------------------------
    # Telegram API helpers
    # ------------------------------------------------------------------

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        """POST one Bot API method; return ``result`` or raise ChannelSendError."""
        if self._client is None:
            raise ChannelSendError(f"Telegram {method}: client not open")
        resp = await self._client.post(f"{self._base_url}/{method}", json=payload)
        data = resp.json()
        if not data.get("ok"):
            raise ChannelSendError(f"Telegram {method} failed: {data.get('description', 'unknown')}")
        return data.get("result")
