"""Remote data gateways."""

from __future__ import annotations

from typing import TYPE_CHECKING

from medfly.gateway.base import (
    ChangeEvent,
    ChangeKind,
    Embed,
    Query,
    RemoteGateway,
    Subscription,
    TextSearch,
)
from medfly.gateway.local import LocalGateway

if TYPE_CHECKING:
    from medfly.config import Settings

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "Embed",
    "LocalGateway",
    "Query",
    "RemoteGateway",
    "Subscription",
    "TextSearch",
    "open_gateway",
]


def open_gateway(settings: "Settings") -> RemoteGateway:
    """Return a Supabase gateway when credentials are configured, else a local one."""
    if settings.uses_supabase:
        from medfly.gateway.supabase import SupabaseGateway

        return SupabaseGateway(settings.supabase_url, settings.supabase_key)
    return LocalGateway(settings.local_db_path, seed=settings.seed_path)
