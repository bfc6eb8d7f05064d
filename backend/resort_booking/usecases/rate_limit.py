from __future__ import annotations

import logging
import time
from datetime import date
from typing import Callable

from ..domain.errors import RateLimitedError
from ..domain.repositories import RateLimitStore, SchedulingRepository

logger = logging.getLogger(__name__)


class RateLimiter:
    """Advisory guards run before admission.

    The per-contact guard counts the contact's unconfirmed reservations from
    ``today`` on; past-dated ones wait for the expiry sweep and do not count.
    The per-origin guard is a sliding window kept in ``store``; with an
    in-memory store it is only accurate within one process.
    """

    def __init__(
        self,
        store: RateLimitStore,
        *,
        pending_limit: int = 3,
        origin_limit: int = 10,
        origin_window: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.pending_limit = pending_limit
        self.origin_limit = origin_limit
        self.origin_window = origin_window
        self.clock = clock

    async def check_contact(self, repo: SchedulingRepository, phone: str, *, today: date) -> None:
        pending = await repo.count_pending_for_contact(phone, on_or_after=today)
        if pending >= self.pending_limit:
            raise RateLimitedError(
                f"there are already {pending} reservations waiting for confirmation for this contact"
            )

    async def check_origin(self, origin: str) -> None:
        allowed = await self.store.hit(
            f"origin:{origin}",
            limit=self.origin_limit,
            window_seconds=self.origin_window,
            now=self.clock(),
        )
        if not allowed:
            logger.warning("origin %s exceeded %d submissions per %ds", origin, self.origin_limit, self.origin_window)
            raise RateLimitedError("too many requests, try again later")
