"""
chatbridge daemon

Builds the enabled channels from config, connects them, and serves the web
API until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import re
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern

import uvicorn

from ..channels.lark_channel import LarkChannel
from ..channels.telegram_channel import TelegramChannel
from ..core.channel.base import BaseChannel
from ..core.channel.errors import ChannelConfigError
from ..core.channel.router import ChannelRouter
from ..infra.agent import AgentForwarder
from ..infra.chat_store import CHATS_FILENAME, ChatMetadataStore
from ..infra.config import load_config, resolve_env_refs
from ..infra.groups import GROUPS_FILENAME, GroupRegistry
from ..web.app import DEFAULT_WEBHOOK_PATH, create_app

logger = logging.getLogger(__name__)


class BridgeDaemon:
    """
    chatbridge daemon

    Owns the router, the enabled channels, and the uvicorn server.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        self.config = resolve_env_refs(config if config is not None else load_config(config_path))
        self._cfg: Dict[str, Any] = self.config.get("chatbridge", {}) or {}

        data_dir = Path(str(self._cfg.get("data_dir") or "~/.chatbridge")).expanduser()
        self.groups = GroupRegistry(data_dir / GROUPS_FILENAME)
        self.chats = ChatMetadataStore(data_dir / CHATS_FILENAME)

        agent_cfg = self._cfg.get("agent", {}) or {}
        self.forwarder = AgentForwarder(
            url=str(agent_cfg.get("url", "") or ""),
            timeout=float(agent_cfg.get("timeout", 30.0) or 30.0),
        )
        self.router = ChannelRouter(dispatch=self.forwarder)

        self.assistant_name = str(self._cfg.get("assistant_name") or "Andy")
        self.trigger_pattern: Optional[Pattern[str]] = None
        if self._cfg.get("trigger_pattern"):
            self.trigger_pattern = re.compile(str(self._cfg["trigger_pattern"]), re.IGNORECASE)

        self.lark_channel: Optional[LarkChannel] = None
        self._server: Optional[uvicorn.Server] = None
        self._running = False

    # -- Channels -----------------------------------------------------------

    def _channel_cfg(self, name: str) -> Dict[str, Any]:
        return ((self._cfg.get("channels", {}) or {}).get(name, {}) or {})

    def _common_kwargs(self) -> Dict[str, Any]:
        return {
            "assistant_name": self.assistant_name,
            "trigger_pattern": self.trigger_pattern,
        }

    def _create_lark_channel(self) -> Optional[LarkChannel]:
        """Create LarkChannel from config if enabled."""
        cfg = self._channel_cfg("lark")
        if not cfg.get("enabled", False):
            return None
        try:
            return LarkChannel(
                self.router.on_message,
                self.chats.upsert,
                self.groups,
                app_id=str(cfg.get("app_id", "") or ""),
                app_secret=str(cfg.get("app_secret", "") or ""),
                verification_token=str(cfg.get("verification_token", "") or ""),
                base_url=str(cfg.get("base_url") or "https://open.larksuite.com"),
                update_chat_name=self.chats.update_name,
                **self._common_kwargs(),
            )
        except ChannelConfigError as exc:
            logger.warning("Lark channel enabled but misconfigured: %s", exc)
            return None

    def _create_telegram_channel(self) -> Optional[TelegramChannel]:
        """Create TelegramChannel from config if enabled."""
        cfg = self._channel_cfg("telegram")
        if not cfg.get("enabled", False):
            return None
        try:
            return TelegramChannel(
                self.router.on_message,
                self.chats.upsert,
                self.groups,
                bot_token=str(cfg.get("bot_token", "") or ""),
                **self._common_kwargs(),
            )
        except ChannelConfigError as exc:
            logger.warning("Telegram channel enabled but misconfigured: %s", exc)
            return None

    def build_channels(self) -> List[BaseChannel]:
        channels: List[BaseChannel] = []
        self.lark_channel = self._create_lark_channel()
        if self.lark_channel is not None:
            channels.append(self.lark_channel)
        telegram = self._create_telegram_channel()
        if telegram is not None:
            channels.append(telegram)
        for channel in channels:
            self.router.add_channel(channel)
        return channels

    # -- Lifecycle ----------------------------------------------------------

    def create_app(self):
        web_cfg = self._cfg.get("web", {}) or {}
        return create_app(
            self.router,
            lark_channel=self.lark_channel,
            webhook_path=str(self._channel_cfg("lark").get("webhook_path") or DEFAULT_WEBHOOK_PATH),
            api_key=str(web_cfg.get("api_key", "") or ""),
        )

    async def start(self):
        """Connect channels and serve until stopped."""
        self._running = True
        logger.info("chatbridge daemon starting")
        try:
            if not self.build_channels():
                logger.warning("No channels enabled; only the web API will be served")
            await self.router.connect_all()

            web_cfg = self._cfg.get("web", {}) or {}
            server_config = uvicorn.Config(
                self.create_app(),
                host=str(web_cfg.get("host") or "127.0.0.1"),
                port=int(web_cfg.get("port") or 3000),
                log_level=str((self.config.get("logging", {}) or {}).get("level", "INFO")).lower(),
            )
            self._server = uvicorn.Server(server_config)
            await self._server.serve()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("chatbridge daemon error: %s", e)
            raise
        finally:
            self._running = False
            await self.router.disconnect_all()
            await self.forwarder.aclose()
            logger.info("chatbridge daemon stopped")

    def request_stop(self) -> None:
        """Ask the web server to exit; ``start()`` then tears down channels.

        Synchronous so it can run directly as a signal handler.
        """
        self._running = False
        if self._server is not None:
            self._server.should_exit = True

    def health_check(self) -> Dict[str, Any]:
        return {
            "status": "running" if self._running else "stopped",
            "channels": self.router.get_status(),
        }


async def run_daemon(config_path: Optional[str] = None) -> None:
    daemon = BridgeDaemon(config_path=config_path)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, daemon.request_stop)

    await daemon.start()
