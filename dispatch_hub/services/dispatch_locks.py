from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import LockError

from dispatch_hub.core.errors import DispatchInProgressError


log = logging.getLogger(__name__)


def pair_key(order_id: str, company_id: str) -> str:
    return f"{order_id}:{company_id}"


class DispatchLocks(Protocol):
    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        ...


class InProcessDispatchLocks:
    """
    One asyncio.Lock per (order, carrier) pair. A second caller waits up to
    `wait_seconds`, then gets DispatchInProgressError. Different pairs never block.
    """

    def __init__(self, *, wait_seconds: float = 5.0):
        self._wait = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._wait)
            except asyncio.TimeoutError:
                raise DispatchInProgressError(
                    "Another dispatch for this order and carrier is still running",
                    detail={"key": key},
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]


class RedisDispatchLocks:
    """Same contract as InProcessDispatchLocks, shared across API processes."""

    def __init__(self, redis_url: str, *, wait_seconds: float = 5.0, lease_seconds: float = 120.0):
        self.r = redis.from_url(redis_url)
        self._wait = wait_seconds
        self._lease = lease_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.r.lock(f"dispatch:{key}", timeout=self._lease, blocking_timeout=self._wait)
        if not await lock.acquire():
            raise DispatchInProgressError(
                "Another dispatch for this order and carrier is still running",
                detail={"key": key},
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired before the carrier answered; the attempt is still recorded
                log.warning("dispatch lock lease expired key=%s", key)
