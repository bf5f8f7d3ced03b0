"""API key check for the agent-facing routes.

The key may be sent as ``X-API-Key``, ``Authorization: Bearer <key>`` or
``?api_key=``. The Lark webhook is not behind this check; it carries its own
verification token.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

from ..infra.config import get_config

logger = logging.getLogger(__name__)

_BEARER = "bearer "


def _get_configured_api_key(request: Request) -> str:
    """Key set on the app by ``create_app``; falls back to ``chatbridge.web.api_key``."""
    key = getattr(request.app.state, "api_key", None)
    if key is not None:
        return str(key)
    try:
        web_cfg = get_config().get("chatbridge", {}).get("web", {}) or {}
    except Exception as exc:
        logger.debug("No config available for API key lookup: %s", exc)
        return ""
    return str(web_cfg.get("api_key") or "")


def _extract_api_key(request: Request) -> Optional[str]:
    header_key = request.headers.get("x-api-key")
    if header_key:
        return header_key
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith(_BEARER) and auth[len(_BEARER):].strip():
        return auth[len(_BEARER):].strip()
    return request.query_params.get("api_key") or None


async def verify_api_key(request: Request) -> None:
    """FastAPI dependency; 401 unless the request carries the configured key."""
    expected = _get_configured_api_key(request)
    if not expected:
        state = request.app.state
        if not getattr(state, "warned_no_api_key", False):
            logger.warning("chatbridge.web.api_key is empty; the agent API accepts unauthenticated requests")
            state.warned_no_api_key = True
        return

    provided = _extract_api_key(request)
    if provided is None or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
