"""Record locks and exclusive command processing.

Every command that reads-then-writes an Order, Driver or Venue runs while
holding a lock per touched record. Protean commits the unit of work when
the handler returns, which happens inside ``current_domain.process``, so
the locks are held across the commit and two requests on the same record
are applied one after the other.

Locks come from a fixed pool striped by record key and are acquired in
stripe order with a bounded wait. A wait that runs out raises
ConcurrentModification; process_exclusively() retries the whole command
once (re-read, re-validate, re-apply) before giving up.
"""

import threading
import time
from contextlib import contextmanager

import structlog
from protean.utils.globals import current_domain

from delivery import settings
from delivery.errors import ConcurrentModification

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2
_RETRY_BACKOFF_SECONDS = 0.05
DEFAULT_STRIPES = 1024

# command attribute -> record kind
_KEY_FIELDS = {
    "order_id": "order",
    "driver_id": "driver",
    "venue_id": "venue",
}


def record_key(kind: str, identifier) -> str:
    return f"{kind}:{identifier}"


class LockRegistry:
    """A fixed pool of re-entrant locks, striped by record key.

    Two records may share a stripe and then wait on each other; memory stays
    bounded however many records the process touches.
    """

    def __init__(self, timeout: float | None = None, stripes: int = DEFAULT_STRIPES) -> None:
        self.timeout = timeout
        self._stripes = [threading.RLock() for _ in range(stripes)]

    def stripe_of(self, key: str) -> int:
        return hash(key) % len(self._stripes)

    @contextmanager
    def hold(self, *keys: str):
        timeout = self.timeout if self.timeout is not None else settings.lock_timeout_seconds()
        acquired = []
        stripes = {}
        for key in sorted(set(keys)):
            stripes.setdefault(self.stripe_of(key), key)
        try:
            for stripe in sorted(stripes):
                lock = self._stripes[stripe]
                if not lock.acquire(timeout=timeout):
                    raise ConcurrentModification(stripes[stripe])
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


_registry: LockRegistry | None = None


def get_lock_registry() -> LockRegistry:
    global _registry
    if _registry is None:
        _registry = LockRegistry()
    return _registry


def reset_lock_registry() -> None:
    global _registry
    _registry = None


def lock_keys_for(command) -> list[str]:
    """Record keys a command touches, derived from its identifier fields.

    A driver acting on an order (self-accept, location pings) also touches
    their own Driver record.
    """
    keys = []
    for field_name, kind in _KEY_FIELDS.items():
        value = getattr(command, field_name, None)
        if value:
            keys.append(record_key(kind, value))
    if getattr(command, "actor_role", None) == "driver" and getattr(command, "actor_id", None):
        keys.append(record_key("driver", command.actor_id))
    return keys


def run_exclusively(keys, fn, *args, **kwargs):
    """Call ``fn`` holding the record locks, retrying once on a conflict.

    ``keys`` is a list of record keys or a callable returning one. A callable
    is asked again once the locks are held; if the record set grew while
    waiting (an order got a driver, say) the attempt counts as a conflict.
    """
    resolve = keys if callable(keys) else (lambda: keys)
    for attempt in range(1, MAX_ATTEMPTS + 1):
        wanted = list(resolve())
        try:
            with get_lock_registry().hold(*wanted):
                if callable(keys):
                    missing = set(resolve()) - set(wanted)
                    if missing:
                        raise ConcurrentModification(min(missing), "Record set changed while waiting for locks")
                return fn(*args, **kwargs)
        except ConcurrentModification as exc:
            if attempt == MAX_ATTEMPTS:
                logger.warning("Concurrent modification not resolved", key=exc.key, attempts=attempt)
                raise
            logger.warning("Concurrent modification, retrying", key=exc.key, attempt=attempt)
            time.sleep(_RETRY_BACKOFF_SECONDS)


def process_exclusively(command, keys_for=lock_keys_for):
    """Process a command synchronously under the locks of every record it touches."""
    return run_exclusively(lambda: keys_for(command), current_domain.process, command, asynchronous=False)
