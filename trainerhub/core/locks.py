"""Per-resource mutual exclusion for check-then-write operations.

Uses a Redis lock so every worker process shares it, with an in-memory
``asyncio.Lock`` fallback for development and tests when Redis is not
available.
"""
import asyncio
import logging
import uuid

from trainerhub.config.settings import settings
from trainerhub.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

# In-memory fallback for development when Redis is not available. An entry
# lives while anyone holds or waits for it.
_memory_locks: dict[str, asyncio.Lock] = {}
_memory_lock_users: dict[str, int] = {}
_use_memory_fallback = False
_client = None


async def get_redis():
    """Get Redis client instance or None when falling back to memory."""
    global _use_memory_fallback, _client

    if _use_memory_fallback:
        return None
    if _client is not None:
        return _client

    try:
        import redis.asyncio as redis

        pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)
        await client.ping()
        _client = client
        return client
    except Exception as e:
        logger.warning(f"Redis not available, using in-memory locks: {e}")
        _use_memory_fallback = True
        return None


class ResourceLock:
    """Async context manager holding an exclusive lock on one resource.

    Raises ``ConflictError`` if the lock cannot be acquired within the
    blocking timeout.
    """

    LOCK_PREFIX = "lock:"

    def __init__(
        self,
        kind: str,
        resource_id: uuid.UUID | str,
        timeout: float | None = None,
        blocking_timeout: float | None = None,
    ):
        self.kind = kind
        self.resource_id = str(resource_id)
        self.key = f"{self.LOCK_PREFIX}{kind}:{self.resource_id}"
        self.timeout = timeout or settings.TRAINER_LOCK_TIMEOUT_SECONDS
        self.blocking_timeout = blocking_timeout or settings.TRAINER_LOCK_BLOCKING_TIMEOUT_SECONDS
        self._redis_lock = None
        self._memory_lock: asyncio.Lock | None = None

    async def __aenter__(self) -> "ResourceLock":
        client = await get_redis()

        if client:
            self._redis_lock = client.lock(
                self.key,
                timeout=self.timeout,
                blocking_timeout=self.blocking_timeout,
            )
            acquired = await self._redis_lock.acquire()
        else:
            self._memory_lock = _memory_locks.setdefault(self.key, asyncio.Lock())
            _memory_lock_users[self.key] = _memory_lock_users.get(self.key, 0) + 1
            try:
                await asyncio.wait_for(self._memory_lock.acquire(), timeout=self.blocking_timeout)
                acquired = True
            except asyncio.TimeoutError:
                self._drop_memory_lock(held=False)
                acquired = False
            except asyncio.CancelledError:
                self._drop_memory_lock(held=False)
                raise

        if not acquired:
            raise ConflictError(
                f"{self.kind.capitalize()} is busy with another request, try again",
                code="RESOURCE_LOCKED",
                details={"kind": self.kind, "id": self.resource_id},
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._redis_lock is not None:
            try:
                await self._redis_lock.release()
            except Exception as e:
                # Lock expired while held; the work itself is already committed or rolled back
                logger.warning(f"Failed to release {self.key}: {e}")
            self._redis_lock = None
        elif self._memory_lock is not None:
            self._drop_memory_lock(held=True)

    def _drop_memory_lock(self, held: bool) -> None:
        if held:
            self._memory_lock.release()
        users = _memory_lock_users.get(self.key, 1) - 1
        if users > 0:
            _memory_lock_users[self.key] = users
        else:
            _memory_lock_users.pop(self.key, None)
            if _memory_locks.get(self.key) is self._memory_lock:
                del _memory_locks[self.key]
        self._memory_lock = None


def trainer_lock(trainer_id: uuid.UUID | str) -> ResourceLock:
    """Lock serialising every status-affecting write for one trainer."""
    return ResourceLock("trainer", trainer_id)


def college_lock(college_id: uuid.UUID | str) -> ResourceLock:
    """Lock serialising assignment changes for one college."""
    return ResourceLock("college", college_id)
