"""Medfly content client library."""

from medfly.config import Settings
from medfly.context import EditorialContext, PlatformContext
from medfly.db import ContentDB
from medfly.entities import Category, Lecturer, Note, Post, Tag, Unit, Year
from medfly.gateway import LocalGateway, open_gateway
from medfly.search import SearchFilters, SortOrder
from medfly.store import EditorialState, PlatformState, Store

__all__ = [
    "Category",
    "ContentDB",
    "EditorialContext",
    "EditorialState",
    "Lecturer",
    "LocalGateway",
    "Note",
    "PlatformContext",
    "PlatformState",
    "Post",
    "SearchFilters",
    "Settings",
    "SortOrder",
    "Store",
    "Tag",
    "Unit",
    "Year",
    "open_gateway",
]
