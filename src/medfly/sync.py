"""Sync controller: bootstrap every collection once, then keep it live.

Flow
----
1. :meth:`SyncController.start` opens one change-feed subscription per
   watched table, then fetches every collection concurrently.  Subscribing
   first means a change that lands during the bootstrap still triggers a
   refetch.
2. Each fetch is independent.  A failure marks only that collection as
   ``error`` (its items are left as they were) and is logged; nothing retries
   automatically.
3. Any insert, update, or delete on a watched table refetches every
   collection mapped to it in full.  There is no incremental patching and no
   reconnect when the transport drops.
4. :meth:`SyncController.stop` releases the subscriptions.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Mapping

from medfly.errors import FetchError, SubscriptionError
from medfly.gateway.base import ChangeEvent, RemoteGateway, Subscription
from medfly.log import get_logger
from medfly.store import BeginLoad, FailLoad, ReplaceCollection, Store

log = get_logger(__name__)

Fetcher = Callable[[RemoteGateway], tuple[Any, ...]]


class SyncController:
    """Keeps a :class:`~medfly.store.Store` in step with the backend.

    Parameters
    ----------
    store:
        Store whose collections are replaced on every fetch.
    gateway:
        Backend to read from and subscribe to.
    fetchers:
        Collection name → reader returning that collection's entities.
    watched:
        Table name → collection names to refetch when that table changes.
    """

    def __init__(
        self,
        store: Store,
        gateway: RemoteGateway,
        fetchers: Mapping[str, Fetcher],
        watched: Mapping[str, tuple[str, ...]],
        *,
        max_workers: int | None = None,
    ) -> None:
        unknown = {c for cols in watched.values() for c in cols} - set(fetchers)
        if unknown:
            raise ValueError(f"Watched collections without a fetcher: {', '.join(sorted(unknown))}")
        self.store = store
        self.gateway = gateway
        self._fetchers = dict(fetchers)
        self._watched = {table: tuple(cols) for table, cols in watched.items()}
        self._max_workers = max_workers or len(self._fetchers) or 1
        self._subscriptions: list[Subscription] = []

    @property
    def running(self) -> bool:
        return bool(self._subscriptions)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def refresh(self, collection: str) -> bool:
        """Refetch *collection* in full; returns ``False`` when the fetch failed."""
        fetch = self._fetchers[collection]
        self.store.dispatch(BeginLoad(collection))
        try:
            items = fetch(self.gateway)
        except FetchError as exc:
            log.warning("fetch_failed", collection=collection, error=str(exc))
            self.store.dispatch(FailLoad(collection, f"Failed to fetch {collection}: {exc.message}"))
            return False
        self.store.dispatch(ReplaceCollection(collection, items))
        log.debug("collection_loaded", collection=collection, count=len(items))
        return True

    def refresh_all(self) -> dict[str, bool]:
        """Fetch every collection concurrently; returns collection → success."""
        names = list(self._fetchers)
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="medfly-sync") as pool:
            results = pool.map(self.refresh, names)
            return dict(zip(names, results))

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def _on_change(self, event: ChangeEvent) -> None:
        log.debug("change_received", table=event.table, kind=event.kind.value)
        for collection in self._watched.get(event.table, ()):
            self.refresh(collection)

    def _open_subscriptions(self) -> None:
        for table in self._watched:
            try:
                subscription = self.gateway.subscribe(f"{table}_changes", table, self._on_change)
            except SubscriptionError as exc:
                log.warning("subscribe_failed", table=table, error=str(exc))
                continue
            self._subscriptions.append(subscription)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> dict[str, bool]:
        """Subscribe to every watched table, then bootstrap all collections."""
        if not self.running:
            self._open_subscriptions()
        return self.refresh_all()

    def stop(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                subscription.unsubscribe()
            except SubscriptionError as exc:
                log.warning("unsubscribe_failed", channel=subscription.name, error=str(exc))

    def __enter__(self) -> "SyncController":
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()
