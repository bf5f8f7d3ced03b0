"""
chatbridge Web API

- Lark event callback (webhook)
- Outbound send / typing / reaction API used by the agent
- Channel status
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from ..channels.lark_channel import LarkChannel
from ..core.channel.errors import ChannelError
from ..core.channel.models import MentionUser, SendOptions
from ..core.channel.router import ChannelRouter
from .auth import verify_api_key

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_PATH = "/lark/events"


async def _read_json_object(request: Request) -> Optional[Dict[str, Any]]:
    """Request body as a dict; None when it is not valid JSON or not an object."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _bad_body() -> JSONResponse:
    return JSONResponse({"error": "request body must be a JSON object"}, status_code=400)


def _parse_send_options(body: Dict[str, Any]) -> SendOptions:
    mention = body.get("mention_user")
    mention_user = None
    if isinstance(mention, dict) and mention.get("id"):
        mention_user = MentionUser(id=str(mention["id"]), name=str(mention.get("name") or ""))
    reply_to = body.get("reply_to_message_id")
    return SendOptions(
        reply_to_message_id=str(reply_to) if reply_to else None,
        mention_user=mention_user,
    )


def create_app(
    router: ChannelRouter,
    lark_channel: Optional[LarkChannel] = None,
    webhook_path: str = DEFAULT_WEBHOOK_PATH,
    api_key: Optional[str] = None,
) -> FastAPI:
    """Build the FastAPI app around an already-configured :class:`ChannelRouter`.

    ``api_key`` overrides ``chatbridge.web.api_key`` from the cached config.
    """
    app = FastAPI(title="chatbridge")
    app.state.router = router
    app.state.api_key = api_key

    # ========================================================================
    # Lark callback
    # ========================================================================

    if lark_channel is not None:
        @app.post(webhook_path)
        async def lark_webhook(request: Request, background: BackgroundTasks) -> JSONResponse:
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse({"code": 1, "msg": "invalid json"}, status_code=400)
            if not isinstance(body, dict):
                return JSONResponse({"code": 1, "msg": "invalid payload"}, status_code=400)

            header = body.get("header") or {}
            token = header.get("token") or body.get("token") or ""
            expected = lark_channel.verification_token
            if expected and not secrets.compare_digest(str(token), expected):
                logger.warning("Lark callback rejected: verification token mismatch")
                return JSONResponse({"code": 1, "msg": "invalid token"}, status_code=401)

            if body.get("type") == "url_verification":
                return JSONResponse({"challenge": body.get("challenge", "")})

            event_type = header.get("event_type")
            if event_type == "im.message.receive_v1":
                background.add_task(lark_channel.ingest, body.get("event") or {})
            else:
                logger.debug("Ignoring Lark event type %s", event_type)
            return JSONResponse({"code": 0})

    # ========================================================================
    # Agent-facing API
    # ========================================================================

    @app.post("/api/messages", dependencies=[Depends(verify_api_key)])
    async def api_send_message(request: Request) -> JSONResponse:
        """Send text to a chat; queued by the channel while disconnected."""
        body = await _read_json_object(request)
        if body is None:
            return _bad_body()
        jid = str(body.get("jid") or "")
        text = body.get("text")
        if not jid or not isinstance(text, str):
            return JSONResponse({"error": "jid and text are required"}, status_code=400)
        if not await router.send_message(jid, text, _parse_send_options(body)):
            return JSONResponse({"error": f"no channel owns {jid}"}, status_code=404)
        return JSONResponse({"status": "accepted", "jid": jid})

    @app.post("/api/typing", dependencies=[Depends(verify_api_key)])
    async def api_set_typing(request: Request) -> JSONResponse:
        body = await _read_json_object(request)
        if body is None:
            return _bad_body()
        jid = str(body.get("jid") or "")
        if not jid:
            return JSONResponse({"error": "jid is required"}, status_code=400)
        if not await router.set_typing(jid, bool(body.get("is_typing", True))):
            return JSONResponse({"error": f"no channel owns {jid}"}, status_code=404)
        return JSONResponse({"status": "ok"})

    @app.post("/api/reactions", dependencies=[Depends(verify_api_key)])
    async def api_add_reaction(request: Request) -> JSONResponse:
        """Add an emoji reaction, e.g. {"jid", "message_id", "emoji_type": "THUMBSUP"}."""
        body = await _read_json_object(request)
        if body is None:
            return _bad_body()
        jid = str(body.get("jid") or "")
        message_id = str(body.get("message_id") or "")
        emoji_type = str(body.get("emoji_type") or "")
        if not jid or not message_id or not emoji_type:
            return JSONResponse({"error": "jid, message_id and emoji_type are required"}, status_code=400)
        channel = router.find_channel(jid)
        if channel is None:
            return JSONResponse({"error": f"no channel owns {jid}"}, status_code=404)
        if not channel.capabilities.reactions:
            return JSONResponse({"error": f"{channel.name} does not support reactions"}, status_code=400)
        try:
            await router.add_reaction(jid, message_id, emoji_type)
        except ChannelError as exc:
            logger.warning("Reaction on %s failed: %s", jid, exc)
            return JSONResponse({"error": str(exc)}, status_code=502)
        return JSONResponse({"status": "ok"})

    @app.get("/api/status", dependencies=[Depends(verify_api_key)])
    async def api_status() -> Dict[str, Any]:
        """Per-channel connection state, queue depth and capabilities"""
        return {"channels": router.get_status()}

    return app
