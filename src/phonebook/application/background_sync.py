"""Periodic cache refresh on a daemon thread."""

import logging
import threading
from datetime import datetime, timezone

from phonebook.application.contact_service import PhonebookService
from phonebook.application.dto import SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 3.0


class BackgroundSync:
    """Refreshes every address book right away and then once per interval."""

    def __init__(
        self,
        service: PhonebookService,
        *,
        interval_minutes: float = DEFAULT_INTERVAL_MINUTES,
    ) -> None:
        self._service = service
        self._interval_minutes = interval_minutes
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._last_sync_at: datetime | None = None
        self._last_synced: dict[str, int] = {}
        self._last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_minutes: float | None = None) -> bool:
        """Start the loop. Returns False when it is already running."""
        with self._lock:
            if self.is_running:
                logger.info("Background sync already running")
                return False
            if interval_minutes is not None:
                if interval_minutes <= 0:
                    raise ValueError("interval_minutes must be positive.")
                self._interval_minutes = interval_minutes
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="phonebook-sync",
                daemon=True,
            )
            self._thread.start()
        logger.info("Background sync started: every %s minutes", self._interval_minutes)
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Background sync stopped")

    def sync_once(self) -> dict[str, int]:
        """Run one refresh. Failures are recorded and logged, never raised."""
        logger.info("Background sync: refreshing cache")
        try:
            counts = self._service.refresh()
        except Exception as exc:
            logger.exception("Background sync failed")
            self._last_error = str(exc)
            return {}
        self._last_sync_at = datetime.now(timezone.utc)
        self._last_synced = counts
        self._last_error = None
        logger.info("Background sync: done (%s)", counts)
        return counts

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_running=self.is_running,
            interval_minutes=self._interval_minutes,
            last_sync_at=self._last_sync_at,
            last_synced=dict(self._last_synced),
            last_error=self._last_error,
        )

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.sync_once()
            if stop_event.wait(self._interval_minutes * 60):
                break
