"""
Concurrency control utilities for settlement operations.

This module provides two complementary mechanisms:

1. **Row locks** (lock_transaction)
   - select_for_update on a single Transaction inside the caller's
     atomic block
   - Every status transition goes through it, so two webhook deliveries
     (or a webhook racing the polling fallback) serialize on the row and
     the second one observes the already-applied status

2. **Distributed locks** (DistributedLock)
   - Redis-based mutual exclusion across workers
   - Used for jobs that must not run twice at once, such as draining the
     deferred payout queue
   - TTL prevents deadlocks from crashed workers

Usage:

    from payments.locks import DistributedLock, lock_transaction

    with transaction.atomic():
        txn = lock_transaction(txn_id)
        txn.confirm_payment(...)
        txn.save()

    with DistributedLock("payout-queue", ttl=600, blocking=False):
        drain_queue()
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError, TransactionNotFoundError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

    from payments.models import Transaction


# =============================================================================
# Row Locks
# =============================================================================


def lock_transaction(transaction_id: Any) -> Transaction:
    """
    Fetch a Transaction with a row lock held until the enclosing
    transaction.atomic() block ends.

    Raises:
        TransactionNotFoundError: If no such Transaction exists
    """
    from payments.models import Transaction

    try:
        return Transaction.objects.select_for_update().get(pk=transaction_id)
    except Transaction.DoesNotExist:
        raise TransactionNotFoundError(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": str(transaction_id)},
        )


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed workers
        - Token-based ownership prevents accidental release by other workers
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        lock = DistributedLock("payout-queue", ttl=600, blocking=False)
        try:
            with lock:
                drain_queue()
        except LockAcquisitionError:
            # Another worker is already draining
            return

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it. Safe to call multiple times.
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the lock TTL if we hold it.

        Called between items of a long drain so the lock does not lapse
        mid-run.
        """
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


__all__ = [
    "DistributedLock",
    "lock_transaction",
]
