"""Subscription registry and entitlement-gated fan-out.

A subscription key is ``(pair, indicator)``. ``indicator=None`` is a
wildcard: the subscriber gets every cache and signal event for the pair,
and indicator events as long as the session is premium.

Delivery rules:

- cache and signal events go to every subscriber holding any key for the pair
- indicator events go to subscribers holding the exact key or the wildcard,
  and only while the session is premium
- an exact indicator key whose session is no longer premium gets one
  ``premium_expired`` error and is then revoked; wildcard keys are never
  revoked, they just stop receiving indicator events
- a subscriber whose send fails is unregistered; the others still receive
  the event
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from app.models import Bar, PairKey, Signal
from app.protocol import candles_update, error_message, indicator_update, signal_message
from app.services.entitlements import EntitlementProvider
from core.errors import IndicatorRequiresPremiumError, PremiumExpiredError

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]
SubscriptionKey = tuple[PairKey, str | None]


@dataclass(eq=False)
class Subscriber:
    """One client connection and its subscription keys."""

    session_id: str
    send: SendFn
    keys: set[SubscriptionKey] = field(default_factory=set)

    def wants_pair(self, pair: PairKey) -> bool:
        return any(key_pair == pair for key_pair, _ in self.keys)


class SubscriptionHub:
    """Tracks subscribers and delivers pipeline events to them.

    Deliveries are awaited one subscriber at a time, so every subscriber
    sees a pair's events in pipeline order.
    """

    def __init__(self, entitlements: EntitlementProvider):
        self._entitlements = entitlements
        self._subscribers: dict[str, Subscriber] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, session_id: str, send: SendFn) -> Subscriber:
        """Register a connection. A newer connection with the same id replaces the old one."""
        subscriber = Subscriber(session_id=session_id, send=send)
        if session_id in self._subscribers:
            logger.info(f"Session {session_id} reconnected, replacing previous connection")
        self._subscribers[session_id] = subscriber
        logger.info(f"Subscriber {session_id} registered. Total: {len(self._subscribers)}")
        return subscriber

    def unregister(self, session_id: str, subscriber: Subscriber | None = None) -> bool:
        """Remove a session.

        With ``subscriber``, the entry is removed only if it is still that
        connection; a newer connection registered or rebound under the same
        id is left alone.
        """
        current = self._subscribers.get(session_id)
        if current is None or (subscriber is not None and current is not subscriber):
            return False
        del self._subscribers[session_id]
        logger.info(f"Subscriber {session_id} removed. Total: {len(self._subscribers)}")
        return True

    def rebind(self, old_id: str, new_id: str) -> Subscriber | None:
        """Move a connection (and its keys) to a new session id after auth."""
        subscriber = self._subscribers.pop(old_id, None)
        if subscriber is None:
            return None
        subscriber.session_id = new_id
        self._subscribers[new_id] = subscriber
        return subscriber

    def get(self, session_id: str) -> Subscriber | None:
        return self._subscribers.get(session_id)

    async def subscribe(self, session_id: str, pair: PairKey, indicator: str | None = None) -> None:
        """Add a subscription key.

        Raises:
            KeyError: The session is not registered.
            IndicatorRequiresPremiumError: An indicator key was requested by
                a session without premium.
        """
        subscriber = self._subscribers[session_id]
        if indicator is not None and not await self._entitlements.is_premium(session_id):
            raise IndicatorRequiresPremiumError(f"{indicator} on {pair} requires premium")
        subscriber.keys.add((pair, indicator))
        logger.debug(f"{session_id} subscribed to {pair} ({indicator or 'all'})")

    def unsubscribe(self, session_id: str, pair: PairKey, indicator: str | None = None) -> bool:
        subscriber = self._subscribers.get(session_id)
        if subscriber is None or (pair, indicator) not in subscriber.keys:
            return False
        subscriber.keys.discard((pair, indicator))
        return True

    def subscribers_for(self, pair: PairKey) -> list[Subscriber]:
        return [s for s in self._subscribers.values() if s.wants_pair(pair)]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def on_cache_event(self, pair: PairKey, bar: Bar) -> None:
        await self._broadcast(self.subscribers_for(pair), candles_update(pair, bar))

    async def on_signal_event(self, pair: PairKey, signal: Signal) -> None:
        await self._broadcast(self.subscribers_for(pair), signal_message(pair, signal))

    async def on_indicator_event(self, pair: PairKey, indicator: str, data: dict[str, Any]) -> None:
        exact = (pair, indicator)
        wildcard = (pair, None)
        message = indicator_update(pair, indicator, data)
        failed: list[Subscriber] = []

        for subscriber in list(self._subscribers.values()):
            has_exact = exact in subscriber.keys
            if not has_exact and wildcard not in subscriber.keys:
                continue

            premium = await self._check_premium(subscriber)
            if premium is None:
                continue

            if premium:
                if not await self._deliver(subscriber, message):
                    failed.append(subscriber)
            elif has_exact:
                subscriber.keys.discard(exact)
                logger.info(
                    f"Premium expired for {subscriber.session_id}, "
                    f"revoked {indicator} on {pair}"
                )
                expired = error_message(
                    PremiumExpiredError.code, f"{indicator} on {pair} requires premium"
                )
                if not await self._deliver(subscriber, expired):
                    failed.append(subscriber)

        self._drop(failed)

    async def send_error(self, session_id: str, reason: str, message: str | None = None) -> None:
        subscriber = self._subscribers.get(session_id)
        if subscriber and not await self._deliver(subscriber, error_message(reason, message)):
            self._drop([subscriber])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check_premium(self, subscriber: Subscriber) -> bool | None:
        """Premium status, or ``None`` when the lookup itself failed."""
        try:
            return await self._entitlements.is_premium(subscriber.session_id)
        except Exception as e:
            logger.warning(f"Entitlement lookup failed for {subscriber.session_id}: {e}")
            return None

    async def _deliver(self, subscriber: Subscriber, message: dict[str, Any]) -> bool:
        try:
            await subscriber.send(message)
        except Exception as e:
            logger.warning(f"Failed to send to {subscriber.session_id}: {e}")
            return False
        return True

    async def _broadcast(self, subscribers: list[Subscriber], message: dict[str, Any]) -> None:
        failed = []
        for subscriber in subscribers:
            if not await self._deliver(subscriber, message):
                failed.append(subscriber)
        self._drop(failed)

    def _drop(self, subscribers: list[Subscriber]) -> None:
        for subscriber in subscribers:
            if self._subscribers.get(subscriber.session_id) is subscriber:
                del self._subscribers[subscriber.session_id]
                logger.info(f"Dropped unreachable subscriber {subscriber.session_id}")
