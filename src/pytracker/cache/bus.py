"""Synchronous per-key notification bus."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from pytracker.cache.entry import CacheEntry, copy_entry
from pytracker.cache.keys import CacheKey

_logger = logging.getLogger(__name__)

Listener = Callable[[CacheEntry], None]
Unsubscribe = Callable[[], None]


@dataclass(slots=True)
class Subscription:
    """A consumer observing one exact key.

    ``active`` flips to ``False`` on unsubscribe so a delivery already in
    progress skips it.
    """

    key: CacheKey
    callback: Listener
    active: bool = True


class NotificationBus:
    """Deliver entry changes to subscribers of the exact key that changed.

    Pattern subscriptions are not supported: consumers subscribe to every
    concrete key they render.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[CacheKey, list[Subscription]] = {}

    def subscribe(self, key: CacheKey, callback: Listener) -> Unsubscribe:
        """Register *callback* for *key* and return an idempotent unsubscribe."""
        subscription = Subscription(key=key, callback=callback)
        self._subscriptions.setdefault(key, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            remaining = [sub for sub in self._subscriptions.get(key, []) if sub is not subscription]
            if remaining:
                self._subscriptions[key] = remaining
            else:
                self._subscriptions.pop(key, None)

        return unsubscribe

    def notify(self, key: CacheKey, entry: CacheEntry) -> None:
        """Deliver *entry* synchronously to every active subscriber of *key*.

        Each subscriber receives its own copy of the entry.
        """
        # Iterate over a copy: callbacks may (un)subscribe while we deliver.
        for subscription in list(self._subscriptions.get(key, ())):
            if not subscription.active:
                continue
            try:
                subscription.callback(copy_entry(entry))
            except Exception:
                _logger.warning("Subscriber callback for %s failed", key, exc_info=True)

    def subscriber_count(self, key: CacheKey) -> int:
        return len(self._subscriptions.get(key, ()))

    def clear(self) -> None:
        """Drop every subscription; callbacks are never invoked again."""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.active = False
        self._subscriptions.clear()
