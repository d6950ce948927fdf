"""Sliding-window rate limiting over the shared store."""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from wiki_contrib.core.settings import settings
from wiki_contrib.services.store import KeyValueStore
from wiki_contrib.utils.hash import short_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate-limit check.

    ``retry_after`` is the number of seconds until the oldest action in the
    window ages out; it is only set when ``allowed`` is False.
    """

    allowed: bool
    remaining: int
    retry_after: float | None = None

    @property
    def retry_after_seconds(self) -> int:
        """``retry_after`` rounded up to whole seconds (0 when allowed)."""
        return math.ceil(self.retry_after or 0)


class RateLimiter:
    """Per-identity sliding window of recent action timestamps.

    Checking and recording are separate steps. A pipeline checks early and
    records only once everything succeeded, so rejected work never consumes
    quota. The stored history is capped at ``max_history`` entries, which
    makes very bursty windows approximate.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        scope: str,
        max_history: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._scope = scope
        self._max_history = (
            max_history if max_history is not None else settings.rate_limit_history_size
        )
        self._clock = clock

    def _key(self, identity_hash: str) -> str:
        return f"ratelimit:{self._scope}:{identity_hash}"

    def _load(self, identity_hash: str, window_start: float) -> list[float]:
        raw = self._store.get(self._key(identity_hash))
        if raw is None:
            return []
        try:
            timestamps = [float(ts) for ts in json.loads(raw)]
        except (TypeError, ValueError):
            logger.warning(
                "Resetting malformed %s window for %s", self._scope, short_hash(identity_hash)
            )
            return []
        return sorted(ts for ts in timestamps if ts > window_start)

    def _save(self, identity_hash: str, timestamps: list[float], window_seconds: int) -> None:
        kept = timestamps[-self._max_history :]
        self._store.put(self._key(identity_hash), json.dumps(kept), window_seconds)

    def check_and_record(
        self,
        identity_hash: str,
        max_actions: int,
        window_seconds: int,
        *,
        record: bool = True,
    ) -> RateLimitDecision:
        """Admit or reject one action for ``identity_hash``.

        With ``record=False`` the call only checks capacity and leaves the
        window untouched. A rejected action is never recorded.
        """
        if max_actions > self._max_history:
            raise ValueError(
                f"max_actions ({max_actions}) exceeds stored history ({self._max_history})"
            )

        now = self._clock()
        window = self._load(identity_hash, now - window_seconds)

        if len(window) >= max_actions:
            retry_after = max(0.0, window_seconds - (now - window[0]))
            logger.info(
                "Rate limit hit for %s scope %s; retry in %.0fs",
                short_hash(identity_hash),
                self._scope,
                retry_after,
            )
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        if record:
            window.append(now)
            self._save(identity_hash, window, window_seconds)

        return RateLimitDecision(allowed=True, remaining=max_actions - len(window))

    def check(self, identity_hash: str, max_actions: int, window_seconds: int) -> RateLimitDecision:
        """Check capacity without consuming a slot."""
        return self.check_and_record(identity_hash, max_actions, window_seconds, record=False)

    def record(self, identity_hash: str, window_seconds: int) -> None:
        """Consume one slot unconditionally; call after the action succeeded."""
        now = self._clock()
        window = self._load(identity_hash, now - window_seconds)
        window.append(now)
        self._save(identity_hash, window, window_seconds)

    def count(self, identity_hash: str, window_seconds: int) -> int:
        """Return how many recorded actions fall inside the window."""
        return len(self._load(identity_hash, self._clock() - window_seconds))
