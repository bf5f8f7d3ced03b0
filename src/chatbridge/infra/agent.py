"""Forwards normalized inbound messages to the downstream agent over HTTP."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..core.channel.models import Message

logger = logging.getLogger(__name__)


class AgentForwarder:
    """POSTs ``{"jid": ..., "message": {...}}`` to the agent endpoint.

    Usable directly as the router's dispatch callable. Failures are logged,
    never raised; the agent replies later through ``POST /api/messages``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __call__(self, jid: str, message: Message) -> None:
        await self.forward(jid, message)

    async def forward(self, jid: str, message: Message) -> bool:
        if not self.url:
            logger.debug("Agent URL not configured, dropping message %s", message.id)
            return False
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=10.0))
        try:
            resp = await self._client.post(self.url, json={"jid": jid, "message": message.to_dict()})
            resp.raise_for_status()
            return True
        except httpx.HTTPError as exc:
            logger.error("Failed to forward message %s from %s to agent: %s", message.id, jid, exc)
            return False

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
