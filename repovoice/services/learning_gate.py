"""
Per-user learning gates: edit batching and the profile mutation cooldown.

Two backends share one interface. The in-memory backend is process-local:
every check-and-set runs without an await between check and set, so it is
atomic within one event loop but not across processes. The Redis backend
uses SET NX PX so the same guarantees hold across worker processes.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

import redis.asyncio as redis
import structlog

from repovoice.core.config import settings

logger = structlog.get_logger(__name__)


class BatchAction(str, Enum):
    OPEN = "open"  # first edit of a new batch: enqueue now
    DEFER = "defer"  # first edit joining an open batch: enqueue one follow-up later
    JOINED = "joined"  # batch already has a follow-up: enqueue nothing


@dataclass(frozen=True)
class BatchDecision:
    action: BatchAction
    countdown_ms: int = 0

    @property
    def should_enqueue(self) -> bool:
        return self.action is not BatchAction.JOINED


class GateBackend(Protocol):
    async def open_batch(self, user_id: str, window_ms: int) -> Optional[int]:
        """Open a batch; None if opened, else the ms left in the open batch."""

    async def claim_follow_up(self, user_id: str, ttl_ms: int) -> bool:
        """True for the first caller to claim the open batch's follow-up."""

    async def acquire_cooldown(self, user_id: str, cooldown_ms: int) -> bool:
        """Atomically start the cooldown unless one is running."""

    async def cooldown_remaining_ms(self, user_id: str) -> int:
        ...

    async def release_cooldown(self, user_id: str) -> None:
        ...


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class InMemoryGateBackend:
    """Process-local expiry maps keyed by user id."""

    def __init__(self, clock: Callable[[], int] = monotonic_ms):
        self.clock = clock
        self._batches: dict[str, int] = {}
        self._follow_ups: dict[str, int] = {}
        self._cooldowns: dict[str, int] = {}

    def _remaining(self, table: dict[str, int], user_id: str) -> int:
        expires_at = table.get(user_id)
        if expires_at is None:
            return 0
        remaining = expires_at - self.clock()
        if remaining <= 0:
            del table[user_id]
            return 0
        return remaining

    async def open_batch(self, user_id: str, window_ms: int) -> Optional[int]:
        remaining = self._remaining(self._batches, user_id)
        if remaining:
            return remaining
        self._batches[user_id] = self.clock() + window_ms
        self._follow_ups.pop(user_id, None)
        return None

    async def claim_follow_up(self, user_id: str, ttl_ms: int) -> bool:
        if self._remaining(self._follow_ups, user_id):
            return False
        self._follow_ups[user_id] = self.clock() + ttl_ms
        return True

    async def acquire_cooldown(self, user_id: str, cooldown_ms: int) -> bool:
        if self._remaining(self._cooldowns, user_id):
            return False
        self._cooldowns[user_id] = self.clock() + cooldown_ms
        return True

    async def cooldown_remaining_ms(self, user_id: str) -> int:
        return self._remaining(self._cooldowns, user_id)

    async def release_cooldown(self, user_id: str) -> None:
        self._cooldowns.pop(user_id, None)


class RedisGateBackend:
    """
    Shared gate state in Redis.

    Key Patterns:
    - learning:batch:{user_id} - Open batch marker (TTL: batch window)
    - learning:batch:{user_id}:follow_up - Follow-up already scheduled
    - learning:rate:{user_id} - Mutation cooldown marker (TTL: rate limit)
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def _pttl(self, key: str) -> int:
        ttl = await self.client.pttl(key)
        return ttl if ttl and ttl > 0 else 0

    async def open_batch(self, user_id: str, window_ms: int) -> Optional[int]:
        key = f"learning:batch:{user_id}"
        if await self.client.set(key, "1", nx=True, px=window_ms):
            await self.client.delete(f"{key}:follow_up")
            return None
        remaining = await self._pttl(key)
        # Expired between SET and PTTL: the next edit opens a fresh batch
        return remaining or 1

    async def claim_follow_up(self, user_id: str, ttl_ms: int) -> bool:
        key = f"learning:batch:{user_id}:follow_up"
        return bool(await self.client.set(key, "1", nx=True, px=max(ttl_ms, 1)))

    async def acquire_cooldown(self, user_id: str, cooldown_ms: int) -> bool:
        key = f"learning:rate:{user_id}"
        return bool(await self.client.set(key, "1", nx=True, px=cooldown_ms))

    async def cooldown_remaining_ms(self, user_id: str) -> int:
        return await self._pttl(f"learning:rate:{user_id}")

    async def release_cooldown(self, user_id: str) -> None:
        await self.client.delete(f"learning:rate:{user_id}")


class LearningGate:
    """
    Batches rapid edits and enforces at most one profile mutation per user
    per cooldown window.
    """

    def __init__(
        self,
        backend: GateBackend,
        rate_limit_ms: Optional[int] = None,
        batch_window_ms: Optional[int] = None,
        follow_up_grace_ms: Optional[int] = None,
    ):
        self.backend = backend
        self.rate_limit_ms = rate_limit_ms if rate_limit_ms is not None else settings.learning_rate_limit_ms
        self.batch_window_ms = (
            batch_window_ms if batch_window_ms is not None else settings.learning_batch_window_ms
        )
        self.follow_up_grace_ms = (
            follow_up_grace_ms if follow_up_grace_ms is not None else settings.learning_follow_up_grace_ms
        )

    async def register_edit(self, user_id: str, content_id: str) -> BatchDecision:
        """Decide whether a saved edit should enqueue a learning job."""
        remaining = await self.backend.open_batch(user_id, self.batch_window_ms)
        if remaining is None:
            countdown = await self.backend.cooldown_remaining_ms(user_id)
            logger.debug("Learning batch opened", user_id=user_id, content_id=content_id, countdown_ms=countdown)
            return BatchDecision(BatchAction.OPEN, countdown_ms=countdown)

        if await self.backend.claim_follow_up(user_id, remaining):
            # The opener's job mutates soon after the batch opened, so its
            # cooldown runs until roughly open + rate limit
            elapsed = self.batch_window_ms - remaining
            countdown = max(
                remaining,
                await self.backend.cooldown_remaining_ms(user_id),
                self.rate_limit_ms - elapsed,
            ) + self.follow_up_grace_ms
            logger.info(
                "Edit deferred to batch follow-up",
                user_id=user_id,
                content_id=content_id,
                countdown_ms=countdown,
            )
            return BatchDecision(BatchAction.DEFER, countdown_ms=countdown)

        logger.info("Edit joined open batch", user_id=user_id, content_id=content_id)
        return BatchDecision(BatchAction.JOINED)

    async def try_acquire(self, user_id: str) -> bool:
        """Check-and-set the mutation cooldown; False means rate limited."""
        acquired = await self.backend.acquire_cooldown(user_id, self.rate_limit_ms)
        if not acquired:
            logger.info(
                "Profile update rate limited",
                user_id=user_id,
                remaining_ms=await self.backend.cooldown_remaining_ms(user_id),
            )
        return acquired

    async def release(self, user_id: str) -> None:
        """Undo an acquire that did not lead to a mutation."""
        await self.backend.release_cooldown(user_id)


def build_gate_backend(kind: str, client: Optional[redis.Redis] = None) -> GateBackend:
    if kind == "redis":
        if client is None:
            raise ValueError("Redis gate backend requires a connected client")
        return RedisGateBackend(client)
    return InMemoryGateBackend()
