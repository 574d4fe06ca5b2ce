"""Per-host mutexes serializing conflict-check-then-write within one process"""

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

_registry_lock = Lock()
_host_locks: dict[int, Lock] = {}


def _lock_for(host_id: int) -> Lock:
    with _registry_lock:
        lock = _host_locks.get(host_id)
        if lock is None:
            lock = Lock()
            _host_locks[host_id] = lock
        return lock


@contextmanager
def host_lock(host_id: int) -> Iterator[None]:
    lock = _lock_for(host_id)
    with lock:
        yield
