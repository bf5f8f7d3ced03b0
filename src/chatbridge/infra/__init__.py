"""Infrastructure layer: config, on-disk stores, agent adapter."""

from .agent import AgentForwarder
from .chat_store import ChatMetadataStore
from .config import (
    get_config,
    get_default_config,
    load_config,
    reload_config,
    reset_config_cache,
    resolve_env_refs,
    save_config,
)
from .groups import GroupRegistry

__all__ = [
    "AgentForwarder",
    "ChatMetadataStore",
    "GroupRegistry",
    "get_config",
    "get_default_config",
    "load_config",
    "reload_config",
    "reset_config_cache",
    "resolve_env_refs",
    "save_config",
]
