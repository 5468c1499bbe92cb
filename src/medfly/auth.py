"""Admin gate and auth-session tracking.

The admin gate is a convenience lock for the admin views, not a security
boundary: the password is a shared string and the unlocked flag lives in a
small JSON file, the way a browser would keep it in local storage.  Swap in a
real :class:`AdminGate` when one is needed.
"""

from __future__ import annotations

import hmac
import json
from pathlib import Path
from typing import Any, Protocol

from medfly.gateway.base import RemoteGateway, Subscription
from medfly.log import get_logger
from medfly.store import SetUser, Store

log = get_logger(__name__)

_FLAG = "admin_authenticated"


class AdminGate(Protocol):
    def is_authorized(self) -> bool: ...


class PasswordAdminGate:
    """Unlocks the admin views for whoever knows the shared password."""

    def __init__(self, password: str, state_path: Path | str) -> None:
        self._password = password
        self.state_path = Path(state_path)

    def _read(self) -> dict[str, Any]:
        try:
            return json.loads(self.state_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            log.warning("admin_state_unreadable", path=str(self.state_path))
            return {}

    def _write(self, data: dict[str, Any]) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(data), encoding="utf-8")

    def is_authorized(self) -> bool:
        return self._read().get(_FLAG) is True

    def login(self, attempt: str) -> bool:
        if not hmac.compare_digest(attempt.encode(), self._password.encode()):
            log.info("admin_login_rejected")
            return False
        self._write({**self._read(), _FLAG: True})
        log.info("admin_login")
        return True

    def logout(self) -> None:
        data = self._read()
        data.pop(_FLAG, None)
        self._write(data)


class SessionWatcher:
    """Mirrors the backend auth session into a store's ``current_user``."""

    def __init__(self, store: Store, gateway: RemoteGateway) -> None:
        self.store = store
        self.gateway = gateway
        self._subscription: Subscription | None = None

    @staticmethod
    def _user(session: dict[str, Any] | None) -> dict[str, Any] | None:
        return session.get("user") if session else None

    def _on_change(self, event: str, session: dict[str, Any] | None) -> None:
        log.debug("auth_state_changed", event=event)
        self.store.dispatch(SetUser(self._user(session)))

    def start(self) -> None:
        self.store.dispatch(SetUser(self._user(self.gateway.get_session())))
        if self._subscription is None:
            self._subscription = self.gateway.on_auth_state_change(self._on_change)

    def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()
