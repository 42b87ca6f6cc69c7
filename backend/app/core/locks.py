"""
Per-table mutex on Redis.

Built on redis-py's ``Lock``: acquisition is ``SET key token NX PX ttl`` and
release is a server-side compare-and-delete on the token, so a holder whose
TTL ran out can never delete the key of whoever took the table next.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockNotOwnedError


logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    """Raised when a table lock cannot be acquired within the wait budget."""

    def __init__(self, table_id: int, waited: float) -> None:
        super().__init__(f"Table {table_id} lock not acquired after {waited:.2f}s")
        self.table_id = table_id
        self.waited = waited


def _lock_key(table_id: int) -> str:
    return f"lock:table:{table_id}"


class TableLocks:
    def __init__(
        self,
        client: redis.Redis,
        *,
        ttl_ms: int = 10_000,
        wait_seconds: float = 2.0,
        poll_seconds: float = 0.05,
    ) -> None:
        self._client = client
        self._ttl_ms = ttl_ms
        self._wait_seconds = wait_seconds
        self._poll_seconds = poll_seconds

    @asynccontextmanager
    async def hold(self, table_id: int, *, blocking: bool = True) -> AsyncIterator[None]:
        """Hold the table lock for the duration of the block.

        Blocking callers poll until the wait budget runs out; non-blocking callers
        make a single attempt. Both raise LockTimeout when the lock is not obtained.
        """
        lock = self._client.lock(
            _lock_key(table_id),
            timeout=self._ttl_ms / 1000,
            sleep=self._poll_seconds,
            blocking=blocking,
            blocking_timeout=self._wait_seconds,
            thread_local=False,
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        if not await lock.acquire():
            raise LockTimeout(table_id, loop.time() - started)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockNotOwnedError:
                logger.warning("Lock for table %s expired before release", table_id)
