"""Lark (Feishu) channel.

Inbound events arrive through the webhook route of the web app
(``im.message.receive_v1``); outbound text goes out as ``post`` messages
rendered from markdown, with a plain ``text`` message as fallback.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from ..core.channel.base import BaseChannel, to_iso_timestamp
from ..core.channel.errors import ChannelConfigError
from ..core.channel.models import ChannelCapabilities, InboundEvent, Mention
from ..core.render import render_markdown, to_lark_post
from .lark_client import LARK_BASE_URL, LarkClient

logger = logging.getLogger(__name__)

LARK_MAX_TEXT_LENGTH = 4000
LARK_CHAT_PAGE_SIZE = 100


class LarkChannel(BaseChannel):
    """Bridges Lark group chats and DMs to the agent."""

    name = "lark"
    jid_prefix = "lark:"

    def __init__(
        self,
        on_message,
        on_chat_metadata,
        registered_groups,
        *,
        app_id: str,
        app_secret: str,
        assistant_name: str,
        verification_token: str = "",
        base_url: str = LARK_BASE_URL,
        update_chat_name: Optional[Callable[[str, str], Any]] = None,
        client: Optional[LarkClient] = None,
        **kwargs: Any,
    ) -> None:
        if not app_id or not app_secret:
            raise ChannelConfigError("Lark channel requires app_id and app_secret")
        kwargs.setdefault("capabilities", ChannelCapabilities(
            typing=False,
            reactions=True,
            metadata_sync=True,
            text_chunk_limit=LARK_MAX_TEXT_LENGTH,
        ))
        super().__init__(
            on_message,
            on_chat_metadata,
            registered_groups,
            assistant_name=assistant_name,
            **kwargs,
        )
        self.verification_token = verification_token
        self._update_chat_name = update_chat_name
        self._client = client or LarkClient(app_id, app_secret, base_url=base_url)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _open_transport(self) -> None:
        await self._client.open()

    async def _close_transport(self) -> None:
        await self._client.aclose()

    async def _fetch_bot_id(self) -> Optional[str]:
        bot = await self._client.get_bot_info()
        return bot.get("open_id") or None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def parse_event(self, raw_event: Any) -> Optional[InboundEvent]:
        if not isinstance(raw_event, dict):
            return None
        # accept the full webhook envelope as well as its "event" body
        if "message" not in raw_event and isinstance(raw_event.get("event"), dict):
            raw_event = raw_event["event"]
        message = raw_event.get("message")
        if not isinstance(message, dict):
            return None

        sender = raw_event.get("sender") or {}
        sender_id = (sender.get("sender_id") or {}).get("open_id") or ""
        create_time = message.get("create_time")

        mentions = []
        for m in message.get("mentions") or []:
            key = m.get("key")
            if not key:
                continue
            mentions.append(Mention(
                key=key,
                user_id=(m.get("id") or {}).get("open_id") or "",
                name=m.get("name") or "",
            ))

        return InboundEvent(
            chat_id=message.get("chat_id") or "",
            message_id=message.get("message_id") or create_time or "",
            msg_type=message.get("message_type") or "",
            content=message.get("content"),
            sender_id=sender_id,
            timestamp=to_iso_timestamp(create_time),
            is_group=message.get("chat_type") != "p2p",
            mentions=mentions,
        )

    def _parse_text(self, event: InboundEvent) -> Optional[str]:
        try:
            parsed = json.loads(event.content)
        except (TypeError, ValueError):
            logger.debug("Lark message %s has undecodable content", event.message_id)
            return None
        if not isinstance(parsed, dict):
            return None
        text = parsed.get("text")
        return text if isinstance(text, str) else None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _send_rich(self, jid: str, chunk: str, reply_to: Optional[str]) -> None:
        content = json.dumps(to_lark_post(render_markdown(chunk)), ensure_ascii=False)
        await self._send_raw(jid, "post", content, reply_to)

    async def _send_plain(self, jid: str, text: str, reply_to: Optional[str]) -> None:
        content = json.dumps({"text": text}, ensure_ascii=False)
        await self._send_raw(jid, "text", content, reply_to)

    async def _send_raw(self, jid: str, msg_type: str, content: str, reply_to: Optional[str]) -> None:
        if reply_to:
            await self._client.reply_message(reply_to, msg_type, content)
        else:
            await self._client.create_message(self.chat_id_from_jid(jid), msg_type, content)

    async def add_reaction(self, jid: str, message_id: str, emoji_type: str) -> None:
        await self._client.add_reaction(message_id, emoji_type)
        logger.info("Lark reaction added (message=%s, emoji=%s)", message_id, emoji_type)

    async def sync_chat_metadata(self) -> None:
        """Page through the chats the bot belongs to and record their names."""
        if self._update_chat_name is None:
            return
        logger.info("Syncing chat metadata from Lark...")
        count = 0
        page_token: Optional[str] = None
        try:
            while True:
                data: Dict[str, Any] = await self._client.list_chats(page_token, page_size=LARK_CHAT_PAGE_SIZE)
                for chat in data.get("items") or []:
                    chat_id = chat.get("chat_id")
                    chat_name = chat.get("name")
                    if chat_id and chat_name:
                        self._update_chat_name(self.to_jid(chat_id), chat_name)
                        count += 1
                page_token = data.get("page_token") or None
                if not page_token or data.get("has_more") is False:
                    break
        except Exception as exc:
            logger.error("Failed to sync Lark chat metadata: %s", exc)
            return
        logger.info("Lark chat metadata synced (%d chats)", count)
