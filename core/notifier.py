"""
Change notification channel

Every committed Match mutation is published here as a full MatchState
snapshot and fanned out to the subscribers of that match.

Threading model:
- publish() is called from sync request handlers running in FastAPI's
  worker thread pool, after the transaction has committed
- each Subscription belongs to the event loop that created it; delivery is
  handed over with loop.call_soon_threadsafe so queues are only touched on
  their own loop

Ordering: snapshots carry Match.version. A snapshot older than one already
delivered for the same match is dropped, so subscribers see versions in
commit order (possibly with gaps, never reordered).

Gap-fill is the subscriber's job: subscribe first, then fetch the current
state, then skip any snapshot whose version is not newer than the fetched one.
"""
import asyncio
import threading
import logging
from typing import Dict, Optional, Set
from uuid import UUID

from schemas import MatchState
from core.exceptions import ConnectionFailure
from database import get_settings

logger = logging.getLogger(__name__)

_CLOSED = object()
_DROPPED = object()


class Subscription:
    """
    Async iterator of MatchState snapshots for one match.

    Usage:
        async with notifier.subscribe(match_id) as subscription:
            async for state in subscription:
                ...

    Raises ConnectionFailure from the iterator when the subscriber fell so
    far behind that its buffer overflowed; resubscribe and re-fetch.
    """

    def __init__(self, notifier: "MatchNotifier", match_id: UUID, queue_size: int):
        self.match_id = match_id
        self.closed = False
        self._notifier = notifier
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._dropped = False

    def _deliver(self, state) -> None:
        # runs on self._loop
        if self.closed or self._dropped:
            return
        try:
            self._queue.put_nowait(state)
        except asyncio.QueueFull:
            logger.warning(f"Subscriber of match {self.match_id} overflowed, dropping it")
            self._dropped = True
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_DROPPED)
            self._notifier._unregister(self)

    def _wake(self) -> None:
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> MatchState:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _DROPPED:
            raise ConnectionFailure(
                f"Notification channel for match {self.match_id} dropped this subscriber"
            )
        if item is _CLOSED or self.closed:
            raise StopAsyncIteration
        return item

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._notifier._unregister(self)
        try:
            self._loop.call_soon_threadsafe(self._wake)
        except RuntimeError:
            # loop already closed, nobody is waiting
            pass


class MatchNotifier:
    """In-process publish/subscribe keyed by match id."""

    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: Dict[UUID, Set[Subscription]] = {}
        self._last_version: Dict[UUID, int] = {}

    def subscribe(self, match_id: UUID) -> Subscription:
        """
        Register a subscriber for match_id, effective immediately.

        Must be called from a running event loop.
        """
        queue_size = self._queue_size or get_settings().subscriber_queue_size
        subscription = Subscription(self, match_id, queue_size)
        with self._lock:
            self._subscribers.setdefault(match_id, set()).add(subscription)
        logger.info(f"New subscriber for match {match_id}")
        return subscription

    def publish(self, state: MatchState) -> int:
        """
        Fan a committed snapshot out to the match's subscribers.

        Returns the number of subscribers it was handed to.
        """
        with self._lock:
            subscriptions = self._subscribers.get(state.id)
            if not subscriptions:
                return 0

            last = self._last_version.get(state.id, 0)
            if state.version <= last:
                logger.debug(
                    f"Skipping stale snapshot v{state.version} of match {state.id} (delivered v{last})"
                )
                return 0
            self._last_version[state.id] = state.version

            delivered = 0
            for subscription in list(subscriptions):
                try:
                    subscription._loop.call_soon_threadsafe(subscription._deliver, state)
                    delivered += 1
                except RuntimeError:
                    logger.warning(f"Subscriber loop of match {state.id} is closed, removing it")
                    self._discard(subscription)
            return delivered

    def subscriber_count(self, match_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(match_id, ()))

    def _unregister(self, subscription: Subscription) -> None:
        with self._lock:
            self._discard(subscription)

    def _discard(self, subscription: Subscription) -> None:
        # caller holds self._lock
        subscriptions = self._subscribers.get(subscription.match_id)
        if subscriptions is None:
            return
        subscriptions.discard(subscription)
        if not subscriptions:
            del self._subscribers[subscription.match_id]
            self._last_version.pop(subscription.match_id, None)


notifier = MatchNotifier()
