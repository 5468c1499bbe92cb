"""Runtime settings.

Values are resolved in this order: explicit keyword arguments, ``MEDFLY_*``
environment variables, then the ``[medfly]`` table of an optional TOML file::

    [medfly]
    supabase_url   = "https://xyzcompany.supabase.co"
    supabase_key   = "public-anon-key"
    search_limit   = 50
    seed_path      = "data/seed.yaml"

Environment variables:
    MEDFLY_SUPABASE_URL      – project URL; when unset the local DuckDB gateway is used
    MEDFLY_SUPABASE_KEY      – anon/public API key
    MEDFLY_SEARCH_LIMIT      – row cap for remote note searches (default 50)
    MEDFLY_ADMIN_PASSWORD    – shared admin panel password
    MEDFLY_ADMIN_STATE       – file holding the persisted admin flag
    MEDFLY_LOCAL_DB          – DuckDB database path for the local gateway
    MEDFLY_SEED              – YAML seed file loaded into the local gateway
    MEDFLY_CONFIG            – TOML file read by :meth:`Settings.load`
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

_ENV_PREFIX = "MEDFLY_"
_ENV_NAMES = {
    "supabase_url": "MEDFLY_SUPABASE_URL",
    "supabase_key": "MEDFLY_SUPABASE_KEY",
    "search_limit": "MEDFLY_SEARCH_LIMIT",
    "admin_password": "MEDFLY_ADMIN_PASSWORD",
    "admin_state_path": "MEDFLY_ADMIN_STATE",
    "local_db_path": "MEDFLY_LOCAL_DB",
    "seed_path": "MEDFLY_SEED",
}


@dataclass
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    search_limit: int = 50
    admin_password: str = "Davis"
    admin_state_path: Path = Path.home() / ".medfly" / "admin.json"
    local_db_path: str = ":memory:"
    seed_path: Path | None = None

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def load(cls, config_path: Path | str | None = None, **overrides: Any) -> "Settings":
        """Merge TOML file, environment, and *overrides* into a :class:`Settings`."""
        values: dict[str, Any] = {}

        path = config_path or os.getenv(f"{_ENV_PREFIX}CONFIG")
        if path:
            with open(path, "rb") as fh:
                values.update(tomllib.load(fh).get("medfly", {}))

        for name, env in _ENV_NAMES.items():
            raw = os.getenv(env)
            if raw:
                values[name] = raw

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls._coerce(values)

    @classmethod
    def _coerce(cls, values: dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        if "search_limit" in values:
            values["search_limit"] = int(values["search_limit"])
        if "admin_state_path" in values:
            values["admin_state_path"] = Path(values["admin_state_path"]).expanduser()
        if values.get("seed_path"):
            values["seed_path"] = Path(values["seed_path"]).expanduser()
        if values.get("search_limit", 1) < 1:
            raise ValueError("search_limit must be positive")
        return cls(**values)
