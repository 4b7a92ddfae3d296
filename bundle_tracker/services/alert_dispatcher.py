"""
Fan-out of sell alerts to storage, notification channels and subscribers
"""

import asyncio
import inspect
import logging
from typing import Callable, List, Optional, Protocol

from bundle_tracker.core.database import AlertStore
from bundle_tracker.core.models import SellAlert


class AlertChannel(Protocol):
    async def send_sell_alert(self, alert: SellAlert) -> bool: ...


AlertCallback = Callable[[SellAlert], object]


class AlertDispatcher:
    """
    Delivers every alert once to the store, each channel and each subscriber.

    Targets run concurrently and fail independently; a failing target is
    logged and never affects the others or the caller.
    """

    def __init__(self, channels: Optional[List[AlertChannel]] = None,
                 store: Optional[AlertStore] = None):
        self.channels = [c for c in (channels or []) if c is not None]
        self.store = store
        self.logger = logging.getLogger(__name__)
        self._subscribers: List[AlertCallback] = []

        # Stats
        self.dispatched = 0
        self.failures = 0

    def subscribe(self, callback: AlertCallback) -> Callable[[], None]:
        """Register a listener (sync or async). Returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def _notify_subscriber(self, callback: AlertCallback, alert: SellAlert):
        result = callback(alert)
        if inspect.isawaitable(result):
            await result

    async def dispatch(self, alert: SellAlert):
        """Deliver `alert` to every target; never raises"""
        targets = []
        coros = []

        if self.store is not None:
            targets.append("store")
            coros.append(self.store.store_alert(alert))

        for channel in self.channels:
            targets.append(type(channel).__name__)
            coros.append(channel.send_sell_alert(alert))

        # Snapshot so unsubscribing mid-dispatch is safe
        for callback in list(self._subscribers):
            targets.append(f"subscriber:{getattr(callback, '__name__', repr(callback))}")
            coros.append(self._notify_subscriber(callback, alert))

        if not coros:
            return

        results = await asyncio.gather(*coros, return_exceptions=True)
        self.dispatched += 1

        for target, result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.failures += 1
                self.logger.error(f"Alert delivery to {target} failed for "
                                  f"{alert.wallet_address[:10]}...: {result}")
            elif result is False and target != "store":
                self.logger.warning(f"Alert delivery to {target} was not accepted")

        self.logger.info(f"Dispatched {alert.wallet_role.value} sell alert for "
                         f"{alert.wallet_address[:10]}... to {len(targets)} targets")

    async def close(self):
        for channel in self.channels:
            close = getattr(channel, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                self.logger.warning(f"Error closing {type(channel).__name__}: {e}")
