"""Version status shown to the user, with lock and debounce handling."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

from shelf_sync.config import SyncSettings
from shelf_sync.core.reconciler import Reconciler, discard_late_outcome
from shelf_sync.errors import (
    CheckInProgressError,
    CheckTimeoutError,
    NotConfiguredError,
    SyncError,
)
from shelf_sync.models.sync import ConflictResolution, ResolutionAction, VersionCompareResult

log = logging.getLogger(__name__)


class VersionStatus(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    SYNCED = "synced"
    CONFLICT = "conflict"


STATUS_DISPLAY = {
    VersionStatus.UNKNOWN: ("Not checked", "dim"),
    VersionStatus.CHECKING: ("Checking...", "yellow"),
    VersionStatus.SYNCED: ("In sync", "green"),
    VersionStatus.CONFLICT: ("Conflict", "bold red"),
}


def unexpected_failure(exc: Exception) -> SyncError:
    """Wrap an exception from outside the taxonomy so it can still be shown."""
    return SyncError(f"{type(exc).__name__}: {exc}")


class VersionStatusController:
    """Wraps a Reconciler's results for presentation.

    Soft status updates are ignored while a lock is held, so a periodic
    automatic check cannot overwrite a conflict the user has not seen yet.
    Forced updates always apply and release the lock.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        settings: SyncSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_status_change: Callable[[VersionStatus], None] | None = None,
    ):
        self.reconciler = reconciler
        self.settings = settings or reconciler.settings
        self.clock = clock
        self.on_status_change = on_status_change

        self.status = VersionStatus.UNKNOWN
        self.last_result: VersionCompareResult | None = None
        self.last_error: SyncError | None = None

        self._locked = False
        self._lock_handle: asyncio.TimerHandle | None = None
        self._last_modification: float | None = None
        self._manual_in_flight = False

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def check_in_flight(self) -> bool:
        return self._manual_in_flight

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def _apply(self, status: VersionStatus) -> None:
        if status == self.status:
            return
        log.debug(f"Version status {self.status.value} -> {status.value}")
        self.status = status
        if self.on_status_change:
            self.on_status_change(status)

    def set_status(self, status: VersionStatus, lock_duration: float | None = None) -> bool:
        """Soft update; returns False when the status is locked."""
        if self._locked:
            log.debug(f"Status locked, ignoring {status.value}")
            return False

        self._apply(status)
        if lock_duration:
            self._lock(lock_duration)
        return True

    def force_set_status(self, status: VersionStatus) -> None:
        """Update regardless of any lock, and release it."""
        self._release_lock()
        self._apply(status)

    def _lock(self, duration: float) -> None:
        # A single pending timer: replace, never stack
        if self._lock_handle is not None:
            self._lock_handle.cancel()
        self._locked = True
        self._lock_handle = asyncio.get_running_loop().call_later(duration, self._lock_expired)
        log.debug(f"Status locked for {duration:g}s")

    def _lock_expired(self) -> None:
        self._locked = False
        self._lock_handle = None
        log.debug("Status lock expired")

    def _release_lock(self) -> None:
        if self._lock_handle is not None:
            self._lock_handle.cancel()
            self._lock_handle = None
        self._locked = False

    def close(self) -> None:
        """Cancel any pending lock timer."""
        self._release_lock()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def note_user_modification(self, mark_conflict: bool = True) -> None:
        """Record a cache edit so automatic checks hold off for a moment."""
        self._last_modification = self.clock()
        if mark_conflict and self.reconciler.get_sync_config() is not None:
            self.set_status(VersionStatus.CONFLICT)

    def _recently_modified(self) -> bool:
        if self._last_modification is None:
            return False
        return self.clock() - self._last_modification < self.settings.modification_grace

    async def check_versions(self) -> VersionCompareResult | None:
        """Automatic background check. Skips quietly when it should not run."""
        config = self.reconciler.get_sync_config()
        if config is None or not config.auto_version_check:
            return None
        if self._locked:
            log.debug("Auto check skipped: status locked")
            return None
        if self._manual_in_flight:
            log.debug("Auto check skipped: manual check running")
            return None
        if self._recently_modified():
            log.debug("Auto check skipped: cache modified moments ago")
            return None

        try:
            result = await self.reconciler.compare_versions()
        except SyncError as e:
            log.warning(f"Automatic version check failed: {e}")
            self.last_error = e
            self.set_status(VersionStatus.UNKNOWN)
            return None
        except Exception as e:
            log.exception("Automatic version check failed unexpectedly")
            self.last_error = unexpected_failure(e)
            self.set_status(VersionStatus.UNKNOWN)
            return None

        self.last_result = result
        if result is None:
            self.set_status(VersionStatus.UNKNOWN)
        elif result.has_conflict:
            self.set_status(VersionStatus.CONFLICT, lock_duration=self.settings.conflict_lock)
        else:
            self.set_status(VersionStatus.SYNCED)
        return result

    async def manual_check(self) -> VersionCompareResult | None:
        """User-requested check with a hard timeout.

        Raises:
            NotConfiguredError: No external file is linked
            CheckInProgressError: A manual check is already running
            CheckTimeoutError: The comparison did not finish in time
            SyncError: Any other failure; unexpected exceptions are wrapped
        """
        if self.reconciler.get_sync_config() is None:
            raise NotConfiguredError("No external file is linked")
        if self._manual_in_flight:
            raise CheckInProgressError("A version check is already running")

        self._manual_in_flight = True
        self.last_error = None
        self.force_set_status(VersionStatus.CHECKING)
        timeout = self.settings.manual_check_timeout

        task = asyncio.ensure_future(self.reconciler.compare_versions())
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(discard_late_outcome)
            self.force_set_status(VersionStatus.UNKNOWN)
            self.last_error = CheckTimeoutError(f"No result after {timeout:g}s")
            raise self.last_error from None
        except SyncError as e:
            self.last_error = e
            self.force_set_status(VersionStatus.UNKNOWN)
            raise
        except Exception as e:
            self.last_error = unexpected_failure(e)
            self.force_set_status(VersionStatus.UNKNOWN)
            raise self.last_error from e
        finally:
            self._manual_in_flight = False

        self.last_result = result
        if result is None:
            self.force_set_status(VersionStatus.UNKNOWN)
        elif result.has_conflict:
            self.force_set_status(VersionStatus.CONFLICT)
        else:
            self.force_set_status(VersionStatus.SYNCED)
        return result

    async def resolve(self, resolution: ConflictResolution) -> bool:
        """Resolve through the engine; success means synced, failure conflict."""
        try:
            ok = await self.reconciler.resolve_conflict(resolution)
        except SyncError as e:
            self.last_error = e
            self.force_set_status(VersionStatus.CONFLICT)
            raise

        if resolution.action == ResolutionAction.ABORT:
            return False

        if ok:
            self.last_result = None
            self.force_set_status(VersionStatus.SYNCED)
        else:
            self.force_set_status(VersionStatus.CONFLICT)
        return ok

    def display(self) -> tuple[str, str]:
        """(text, rich style) for the current status."""
        text, style = STATUS_DISPLAY[self.status]
        if self.status == VersionStatus.CONFLICT and self.last_result is not None:
            count = len(self.last_result.meaningful_differences)
            text = f"{text} ({count} difference{'s' if count != 1 else ''})"
        return text, style
