"""Background scheduler — periodic refresh and Dolibarr import.

Runs a tick loop. Each tick checks what needs to run:
  - Refresh: every refresh_interval_seconds — reloads the resolved view
  - Import: every sync_interval_minutes (0 disables) — runs the importer

Both are skipped while an edit session is open or another operation holds
the lock. A skipped task runs on the next tick.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from .errors import Busy, OrderSyncError

log = logging.getLogger(__name__)

TICK_SECONDS = 30

_last_refresh = datetime.min.replace(tzinfo=timezone.utc)
_last_sync = datetime.min.replace(tzinfo=timezone.utc)


async def start_scheduler(service, settings=None):
    """Launch the background scheduler loop. Call once on app startup."""
    if settings is None:
        from .config import settings

    log.info(
        f"Background scheduler started — refresh every {settings.refresh_interval_seconds}s, "
        f"import every {settings.sync_interval_minutes or 'never'} min"
    )
    while True:
        try:
            await _scheduler_tick(service, settings)
        except Exception as e:
            log.error(f"Scheduler tick error: {e}")
        await asyncio.sleep(TICK_SECONDS)


async def _scheduler_tick(service, settings, now: datetime | None = None) -> list[str]:
    """Run whatever is due. Returns the names of the tasks that ran."""
    global _last_refresh, _last_sync

    now = now or datetime.now(timezone.utc)
    ran: list[str] = []
    if service.refresh_blocked:
        log.debug("Scheduler tick skipped — edit open or operation in progress")
        return ran

    # ── Import ──
    if settings.sync_interval_minutes > 0 and now - _last_sync >= timedelta(
        minutes=settings.sync_interval_minutes
    ):
        try:
            result = await service.sync()
            _last_sync = now
            ran.append("sync")
            if result.added:
                # the importer already put what it wrote on display
                _last_refresh = now
                log.info(f"Scheduled import added {result.added} orders")
        except Busy as e:
            log.debug(f"Scheduled import deferred: {e.message}")
        except OrderSyncError as e:
            _last_sync = now
            log.warning(f"Scheduled import failed: {e.message}")

    # ── Refresh ──
    if now - _last_refresh >= timedelta(seconds=settings.refresh_interval_seconds):
        try:
            loaded = await service.load()
            if not loaded.suppressed:
                _last_refresh = now
                ran.append("refresh")
        except OrderSyncError as e:
            log.warning(f"Scheduled refresh failed: {e.message}")

    return ran


def reset_schedule() -> None:
    """Forget the last run times so the next tick runs everything due."""
    global _last_refresh, _last_sync
    _last_refresh = datetime.min.replace(tzinfo=timezone.utc)
    _last_sync = datetime.min.replace(tzinfo=timezone.utc)
