"""
Atomic stock reservation on Redis.

reserve() is an optimistic check-then-act loop:
  WATCH stock key (+ reservation marker) → GET → compare → MULTI/DECRBY/EXEC
A concurrent writer invalidates the WATCH, EXEC fails with WatchError and the
loop re-reads fresh state. Under contention exactly one contender per round
wins. Retries back off exponentially with jitter and stop at max_attempts
(None = unbounded). Counter store errors get their own small retry budget
(store_max_attempts) before surfacing as UpstreamUnavailable.

The marker key records the decision per reservation id, so a redelivered
order.saved returns the original decision instead of decrementing twice.
"""

import asyncio
import logging
import random
from dataclasses import dataclass

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from inventory_service.metrics import RESERVATION_CONFLICTS, RESERVATIONS
from shared.errors import (
    ConcurrencyConflict,
    NotFoundError,
    ReservationContention,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

STOCK_KEY_PREFIX = "stock:"
RESERVATION_KEY_PREFIX = "reservation:"


def stock_key(item_id: str) -> str:
    return f"{STOCK_KEY_PREFIX}{item_id}"


def reservation_key(reservation_id: str) -> str:
    return f"{RESERVATION_KEY_PREFIX}{reservation_id}"


@dataclass(frozen=True)
class ReservationResult:
    accepted: bool
    remaining: int
    duplicate: bool = False


def _encode_marker(accepted: bool, remaining: int) -> str:
    return f"{int(accepted)}:{remaining}"


def _decode_marker(raw: str | bytes) -> ReservationResult:
    if isinstance(raw, bytes):
        raw = raw.decode()
    accepted, remaining = raw.split(":", 1)
    return ReservationResult(accepted=accepted == "1", remaining=int(remaining), duplicate=True)


class ReservationEngine:
    def __init__(
        self,
        redis: aioredis.Redis,
        max_attempts: int | None = 100,
        backoff_base: float = 0.002,
        backoff_cap: float = 0.1,
        marker_ttl_seconds: int = 7 * 24 * 3600,
        store_max_attempts: int = 3,
    ) -> None:
        self._redis = redis
        self._max_attempts = max_attempts
        self._store_max_attempts = max(1, store_max_attempts)
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._marker_ttl = marker_ttl_seconds

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    async def reserve(
        self,
        item_id: str,
        quantity: int,
        reservation_id: str | None = None,
    ) -> ReservationResult:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")

        attempt = 0
        store_failures = 0
        while True:
            attempt += 1
            try:
                result = await self._try_reserve(item_id, quantity, reservation_id)
            except ConcurrencyConflict:
                RESERVATION_CONFLICTS.inc()
                if self._max_attempts is not None and attempt >= self._max_attempts:
                    logger.error(
                        "Reservation gave up after %d conflicting attempts",
                        attempt,
                        extra={"item_id": item_id, "quantity": quantity, "reservation_id": reservation_id},
                    )
                    RESERVATIONS.labels("contention").inc()
                    raise ReservationContention(
                        f"Stock for {item_id} kept changing; gave up after {attempt} attempts"
                    )
                await self._backoff(attempt)
                continue
            except RedisError as exc:
                # With a reservation id a retry after a lost EXEC reply finds the
                # marker, so the decrement is never applied twice.
                store_failures += 1
                logger.warning(
                    "Counter store error on attempt %d/%d",
                    store_failures,
                    self._store_max_attempts,
                    extra={"item_id": item_id, "reservation_id": reservation_id, "error": str(exc)},
                )
                if store_failures >= self._store_max_attempts:
                    RESERVATIONS.labels("store_error").inc()
                    raise UpstreamUnavailable(
                        f"Counter store error while reserving {item_id}: {exc}"
                    ) from exc
                await self._backoff(store_failures)
                continue

            outcome = "duplicate" if result.duplicate else ("accepted" if result.accepted else "rejected")
            RESERVATIONS.labels(outcome).inc()
            logger.info(
                "Stock reservation attempt",
                extra={
                    "item_id": item_id,
                    "quantity": quantity,
                    "reservation_id": reservation_id,
                    "accepted": result.accepted,
                    "remaining": result.remaining,
                    "duplicate": result.duplicate,
                    "attempts": attempt,
                },
            )
            return result

    async def _try_reserve(
        self,
        item_id: str,
        quantity: int,
        reservation_id: str | None,
    ) -> ReservationResult:
        key = stock_key(item_id)
        marker = reservation_key(reservation_id) if reservation_id else None
        watched = [key, marker] if marker else [key]

        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(*watched)

                if marker:
                    recorded = await pipe.get(marker)
                    if recorded is not None:
                        await pipe.unwatch()
                        return _decode_marker(recorded)

                raw = await pipe.get(key)
                current = int(raw) if raw is not None else 0

                if current < quantity:
                    if marker:
                        pipe.multi()
                        pipe.set(marker, _encode_marker(False, current), ex=self._marker_ttl)
                        await pipe.execute()
                    else:
                        await pipe.unwatch()
                    return ReservationResult(accepted=False, remaining=current)

                pipe.multi()
                pipe.decrby(key, quantity)
                if marker:
                    pipe.set(marker, _encode_marker(True, current - quantity), ex=self._marker_ttl)
                results = await pipe.execute()
            except WatchError as exc:
                raise ConcurrencyConflict(key) from exc

        return ReservationResult(accepted=True, remaining=int(results[0]))

    async def _backoff(self, attempt: int) -> None:
        if self._backoff_base <= 0:
            await asyncio.sleep(0)
            return
        delay = min(self._backoff_cap, self._backoff_base * 2 ** (attempt - 1))
        await asyncio.sleep(random.uniform(0, delay))

    # ------------------------------------------------------------------
    # Administrative / display operations
    # ------------------------------------------------------------------

    async def initialize(self, item_id: str, value: int) -> bool:
        """Seed a counter if absent. Returns True when this call created it."""
        self._check_stock_value(value)
        try:
            created = await self._redis.set(stock_key(item_id), value, nx=True)
        except RedisError as exc:
            raise UpstreamUnavailable(f"Counter store error while initializing {item_id}: {exc}") from exc
        logger.info(
            "Stock counter initialized" if created else "Stock counter already present",
            extra={"item_id": item_id, "stock": value},
        )
        return bool(created)

    async def set_stock(self, item_id: str, value: int) -> int:
        """Unconditional override used by admin/demo tooling."""
        self._check_stock_value(value)
        try:
            await self._redis.set(stock_key(item_id), value)
        except RedisError as exc:
            raise UpstreamUnavailable(f"Counter store error while setting {item_id}: {exc}") from exc
        logger.info("Stock set", extra={"item_id": item_id, "stock": value, "operation": "set"})
        return value

    async def get_stock(self, item_id: str) -> int:
        """Point read for display — not linearizable with concurrent reservations."""
        try:
            raw = await self._redis.get(stock_key(item_id))
        except RedisError as exc:
            raise UpstreamUnavailable(f"Counter store error while reading {item_id}: {exc}") from exc
        if raw is None:
            raise NotFoundError(f"No stock counter for item {item_id}")
        return int(raw)

    async def stock_levels(self, item_ids: list[str]) -> dict[str, int | None]:
        """Current counters for several items in one round trip; None where absent."""
        if not item_ids:
            return {}
        try:
            values = await self._redis.mget([stock_key(item_id) for item_id in item_ids])
        except RedisError as exc:
            raise UpstreamUnavailable(f"Counter store error while reading stock levels: {exc}") from exc
        return {
            item_id: int(raw) if raw is not None else None
            for item_id, raw in zip(item_ids, values)
        }

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.error("Redis health check failed", extra={"error": str(exc)})
            return False

    @staticmethod
    def _check_stock_value(value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"Stock must be a non-negative integer, got {value!r}")
