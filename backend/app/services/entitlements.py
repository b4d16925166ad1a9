"""Premium entitlement lookup."""

import logging
import time
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class EntitlementProvider(Protocol):
    """Answers whether a session currently holds premium access."""

    async def is_premium(self, session_id: str) -> bool:
        ...


class InMemoryEntitlements:
    """Premium expiry times (Unix seconds) keyed by session id.

    A session is premium while ``premium_until`` is in the future.
    Unknown sessions are never premium.
    """

    def __init__(
        self,
        premium_until: dict[str, float] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._premium_until: dict[str, float] = dict(premium_until or {})
        self._clock = clock

    def grant(self, session_id: str, until: float) -> None:
        self._premium_until[session_id] = until
        logger.info(f"Premium granted to {session_id} until {until:.0f}")

    def revoke(self, session_id: str) -> None:
        self._premium_until.pop(session_id, None)

    def premium_until(self, session_id: str) -> float | None:
        return self._premium_until.get(session_id)

    async def is_premium(self, session_id: str) -> bool:
        until = self._premium_until.get(session_id)
        return until is not None and until > self._clock()
