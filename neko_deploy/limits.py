"""Rate limit gate.

The hosting API meters big uploads, zip imports and general file operations
in independent buckets. Before spending a unit from a bucket we ask the API
how many are left; if none are, we sleep until the bucket resets and ask
again. Running out of quota is an expected state, not a failure.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from neko_deploy.errors import TransferCancelled

BIG_UPLOADS = "big_uploads"
ZIP = "zip"
GENERAL = "general"


@dataclass(frozen=True)
class RateLimitStatus:
    category: str
    limit: int
    remaining: int
    reset_at: int  # epoch milliseconds

    @classmethod
    def from_payload(cls, category: str, payload: dict) -> "RateLimitStatus":
        return cls(
            category=category,
            limit=int(payload["limit"]),
            remaining=int(payload["remaining"]),
            reset_at=int(payload["reset"]),
        )

    @property
    def exhausted(self) -> bool:
        return self.remaining < 1

    @property
    def reset_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at / 1000, tz=timezone.utc)


class RateLimitGate:
    """Blocks the caller until the named quota category has a unit left.

    ``fetch`` returns a fresh RateLimitStatus for a category (normally
    ``NekowebClient.get_limit``); errors from it propagate. ``wait`` sleeps
    for the given number of seconds and returns True if it was woken by
    cancellation, which is exactly ``threading.Event.wait``.
    """

    def __init__(
        self,
        fetch: Callable[[str], RateLimitStatus],
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.time,
        wait: Optional[Callable[[float], bool]] = None,
        min_wait: float = 1.0,
    ) -> None:
        self.fetch = fetch
        self.logger = logger or logging.getLogger("neko_deploy")
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.wait = wait or self.cancel_event.wait
        self.min_wait = min_wait

    def check_and_wait(self, category: str) -> RateLimitStatus:
        """Return once ``category`` has remaining quota; the last status is returned."""
        status = self.fetch(category)
        while status.exhausted:
            delay = max(status.reset_at / 1000 - self.clock(), self.min_wait)
            self.logger.warning(
                f"No {category} quota left ({status.remaining}/{status.limit}). "
                f"Waiting {_fmt_delay(delay)} until reset at "
                f"{status.reset_datetime.isoformat()} ..."
            )
            if self.wait(delay) or self.cancel_event.is_set():
                raise TransferCancelled(
                    f"Cancelled while waiting for {category} quota to reset."
                )
            status = self.fetch(category)

        self.logger.debug(
            f"Quota {category}: {status.remaining}/{status.limit} remaining."
        )
        return status

    def check_all(self, categories: Iterable[str]) -> None:
        for category in categories:
            self.check_and_wait(category)


def _fmt_delay(seconds: float) -> str:
    seconds = int(round(seconds))
    minutes, sec = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m{sec:02d}s"
    return f"{sec}s"
