"""
locking.py — The process-wide operation lock

One lock serializes every mutation inside this process: import, create,
update, soft delete, restore. It refuses instead of queuing.

Business Rules:
- Acquisition never waits: if the lock is held, Busy is raised at once
- Release is unconditional (success, failure, exception, cancellation)
- The lock gives NO protection across processes; re-reading the store
  right before writing is what narrows cross-instance races

Usage:
    async with lock.hold("update"):
        ...

Called by: services/order_service.py, services/import_service.py
"""

import logging
from contextlib import asynccontextmanager

from .errors import Busy

log = logging.getLogger(__name__)


class OperationLock:
    def __init__(self):
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> str | None:
        return self._holder

    @asynccontextmanager
    async def hold(self, operation: str):
        # Check-and-set happens with no await in between, so two coroutines
        # on the same loop can never both pass
        if self._holder is not None:
            log.info("Refusing %s — %s in progress", operation, self._holder)
            raise Busy(f"Operation in progress ({self._holder}), please retry")
        self._holder = operation
        try:
            yield self
        finally:
            self._holder = None
