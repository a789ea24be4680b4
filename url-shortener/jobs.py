import asyncio
import contextlib
import sys

from middleware.custom_logger import Audit, default_audit
from registry import ShortUrlStore


class CleanupJob:
    """Periodic sweep of expired short URLs; one task per application."""

    def __init__(self, store: ShortUrlStore, interval_minutes: float = 30, audit: Audit = default_audit):
        self.store = store
        self.interval_seconds = interval_minutes * 60
        self.audit = audit
        self._task: asyncio.Task | None = None

    def run_once(self) -> int:
        try:
            removed = self.store.cleanup_expired_urls()
        except Exception as e:
            self.audit.event("cleanup_failed", level="error", error=str(e))
            return 0
        if removed:
            self.audit.event("cleanup_completed", removed=removed)
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                # the audit log itself may be failing here
                print(f"[cleanup] tick failed: {e!r}", file=sys.stderr)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        self.audit.event("cleanup_job_started", interval_minutes=self.interval_seconds / 60)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
