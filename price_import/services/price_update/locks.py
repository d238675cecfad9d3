"""Per-template apply locks."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

from price_import.errors.exceptions import ApplyConflictError

logger = structlog.get_logger(__name__)


class TemplateLockRegistry:
    """At most one apply in flight per template.

    A second apply for a locked template is rejected, not queued. Locks
    live in this process only; hosts running several workers need to
    serialize applies per template themselves.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def is_locked(self, template_id: str) -> bool:
        lock = self._locks.get(template_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, template_id: str) -> AsyncIterator[None]:
        """Hold the template's lock for the duration of the block.

        Raises:
            ApplyConflictError: If the template is already locked
        """
        lock = self._locks.setdefault(template_id, asyncio.Lock())
        if lock.locked():
            logger.warning("apply_conflict", template_id=template_id)
            raise ApplyConflictError(
                f"An apply is already running for template {template_id}",
                details={"template_id": template_id},
            )

        # Acquiring an unlocked asyncio.Lock does not suspend
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if not lock.locked():
                self._locks.pop(template_id, None)
