"""Generation quota gate.

The dispatcher only consumes a yes/no answer from a ``QuotaGate``. The
in-memory gate below keeps a per-member sliding window of usage timestamps
for each quota kind, in the same way a request rate limiter keeps buckets
per identity.

Notes:
- Counts live in process memory. In multi-worker deployments each worker
  enforces its own window; swap to a shared backend for global limits.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

logger = logging.getLogger("coach.quota")

UNLIMITED = 999_999


class QuotaKind(str, Enum):
    """Usage buckets a member draws from."""

    WORKOUT = "workout"
    CHAT = "chat"


@dataclass(slots=True, frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    limit: int
    plan: str

    @property
    def upgrade_required(self) -> bool:
        return not self.allowed and self.plan != "pro"


class QuotaGate(ABC):
    """Entitlement check consulted before any model call."""

    @abstractmethod
    def check(self, member_id: str, kind: QuotaKind, amount: int = 1) -> QuotaDecision:
        """Return whether the member may consume ``amount`` more calls this period."""

    @abstractmethod
    def record(self, member_id: str, kind: QuotaKind, amount: int = 1) -> None:
        """Register consumed calls after a model call completes."""


class AllowAllQuotaGate(QuotaGate):
    """Gate used when entitlement checks are disabled."""

    def check(self, member_id: str, kind: QuotaKind, amount: int = 1) -> QuotaDecision:
        return QuotaDecision(allowed=True, remaining=UNLIMITED, limit=UNLIMITED, plan="pro")

    def record(self, member_id: str, kind: QuotaKind, amount: int = 1) -> None:
        return None


@dataclass
class _Bucket:
    workout: deque[float]
    chat: deque[float]

    def for_kind(self, kind: QuotaKind) -> deque[float]:
        return self.workout if kind is QuotaKind.WORKOUT else self.chat


class InMemoryQuotaGate(QuotaGate):
    def __init__(
        self,
        *,
        workout_limit: int,
        chat_limit: int,
        period_days: int = 30,
        pro_members: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.workout_limit = workout_limit
        self.chat_limit = chat_limit
        self.period_seconds = period_days * 86_400
        self._pro_members = set(pro_members)
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}

    def _get_bucket(self, member_id: str) -> _Bucket:
        bucket = self._buckets.get(member_id)
        if bucket is None:
            bucket = _Bucket(workout=deque(), chat=deque())
            self._buckets[member_id] = bucket
        return bucket

    def _prune(self, window: deque[float], now: float) -> None:
        while window and now - window[0] >= self.period_seconds:
            window.popleft()

    def _limit(self, kind: QuotaKind) -> int:
        return self.workout_limit if kind is QuotaKind.WORKOUT else self.chat_limit

    def check(self, member_id: str, kind: QuotaKind, amount: int = 1) -> QuotaDecision:
        if member_id in self._pro_members:
            return QuotaDecision(allowed=True, remaining=UNLIMITED, limit=UNLIMITED, plan="pro")

        now = self._clock()
        limit = self._limit(kind)
        with self._lock:
            window = self._get_bucket(member_id).for_kind(kind)
            self._prune(window, now)
            remaining = max(0, limit - len(window))

        allowed = remaining >= amount
        if not allowed:
            logger.info("Quota denied member=%s kind=%s limit=%s", member_id, kind.value, limit)
        return QuotaDecision(allowed=allowed, remaining=remaining, limit=limit, plan="free")

    def record(self, member_id: str, kind: QuotaKind, amount: int = 1) -> None:
        if member_id in self._pro_members:
            return
        now = self._clock()
        with self._lock:
            window = self._get_bucket(member_id).for_kind(kind)
            self._prune(window, now)
            window.extend([now] * amount)
