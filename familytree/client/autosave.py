"""Debounced auto-save for one tree.

State machine::

    IDLE → PENDING_SAVE → SAVING → IDLE
                            ↓  ↑
                      RETRY_SCHEDULED

Every edit cancels the running timer and starts a new debounce; only the
latest payload is ever saved. At most one save is in flight. A save that
keeps failing is retried ``max_retries`` times, then given up on with the
change left pending until the next edit.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from familytree.client.interfaces import StatusCallback, TreeEditor, log_status
from familytree.client.persistence_client import PersistenceClient
from familytree.client.scheduler import Scheduler, ThreadingScheduler, TimerHandle
from familytree.config import settings
from familytree.core.errors import FamilyTreeError
from familytree.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class AutoSaveState(str, Enum):
    IDLE = "idle"
    PENDING_SAVE = "pending_save"
    SAVING = "saving"
    RETRY_SCHEDULED = "retry_scheduled"


class AutoSaveCoordinator:
    def __init__(
        self,
        client: PersistenceClient,
        tree_id: str,
        *,
        delay_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        probe_offline: Optional[bool] = None,
        scheduler: Optional[Scheduler] = None,
        on_save: Optional[Callable[[dict[str, Any]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_status: Optional[StatusCallback] = None,
    ):
        self.client = client
        self.tree_id = tree_id

        self.delay_ms = settings.AUTOSAVE_DELAY_MS if delay_ms is None else delay_ms
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay_ms = (
            settings.RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
        )
        self.probe_offline = (
            settings.AUTOSAVE_PROBE_OFFLINE if probe_offline is None else probe_offline
        )

        self.scheduler = scheduler or ThreadingScheduler()
        self.on_save = on_save
        self.on_error = on_error
        self.on_status = on_status or log_status

        self.state = AutoSaveState.IDLE
        self.last_save_time: Optional[datetime] = None
        self.last_error: Optional[Exception] = None
        self.save_count = 0

        self._lock = threading.RLock()
        self._timer: Optional[TimerHandle] = None
        # identifies the live timer; a callback holding an older token is stale
        self._timer_token: Optional[object] = None
        self._editor: Optional[TreeEditor] = None
        self._pending_data: Optional[list[Any]] = None
        self._has_pending = False
        # bumped on every edit, lets a finished save tell whether it is stale
        self._generation = 0

    # ------------------------------------------------------------------
    # wiring
    # ------------------------------------------------------------------
    def attach(self, editor: TreeEditor) -> None:
        self.detach()
        self._editor = editor
        editor.set_on_change(self.handle_change)
        logger.info("Auto-save enabled for %s", self.tree_id)

    def detach(self) -> None:
        with self._lock:
            self._cancel_timer()
            if self.state in (AutoSaveState.PENDING_SAVE, AutoSaveState.RETRY_SCHEDULED):
                self.state = AutoSaveState.IDLE
            editor, self._editor = self._editor, None

        if editor is not None:
            editor.set_on_change(None)
            logger.info("Auto-save disabled for %s", self.tree_id)

    @property
    def has_pending_changes(self) -> bool:
        return self._has_pending

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "state": self.state.value,
                "is_saving": self.state == AutoSaveState.SAVING,
                "has_pending_changes": self._has_pending,
                "last_save_time": self.last_save_time,
                "save_count": self.save_count,
            }

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------
    def handle_change(self, data: Optional[list[Any]] = None) -> None:
        """Editor change callback: remember the latest data and restart the debounce."""
        if data is None:
            if self._editor is None:
                raise ValueError("handle_change() needs data when no editor is attached")
            data = self._editor.export_data()

        with self._lock:
            self._pending_data = data
            self._has_pending = True
            self._generation += 1
            self.client.pending_changes = True

            self._cancel_timer()
            self._schedule(self.delay_ms, attempt=0)
            if self.state != AutoSaveState.SAVING:
                self.state = AutoSaveState.PENDING_SAVE

        self.on_status("Changes detected...", "info")

    def force_save(self) -> Optional[dict[str, Any]]:
        """Skip the debounce and save now (synchronously) if anything is pending."""
        with self._lock:
            self._cancel_timer()
            if not self._has_pending:
                return None
        return self._run_save(attempt=0)

    def cancel_pending(self) -> None:
        """Drop the queued timer; the data stays pending."""
        with self._lock:
            self._cancel_timer()
            if self.state in (AutoSaveState.PENDING_SAVE, AutoSaveState.RETRY_SCHEDULED):
                self.state = AutoSaveState.IDLE

    def mark_saved(self) -> None:
        """Someone else (a manual save, a restore) persisted the current state."""
        with self._lock:
            self._cancel_timer()
            self._pending_data = None
            self._has_pending = False
            self.client.pending_changes = False
            if self.state != AutoSaveState.SAVING:
                self.state = AutoSaveState.IDLE

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._timer_token = None

    def _schedule(self, delay_ms: int, attempt: int) -> None:
        """Caller holds the lock."""
        token = object()

        def fire() -> None:
            with self._lock:
                if self._timer_token is not token:
                    return
                self._timer = None
                self._timer_token = None
            self._run_save(attempt=attempt)

        self._timer_token = token
        self._timer = self.scheduler.call_later(delay_ms / 1000, fire)

    def _skip_offline(self) -> bool:
        if self.client.is_online:
            return False
        if self.probe_offline and self.client.check_connection():
            return False
        return True

    def _run_save(self, attempt: int) -> Optional[dict[str, Any]]:
        with self._lock:
            if self.state == AutoSaveState.SAVING or not self._has_pending:
                return None
            self.state = AutoSaveState.SAVING

        if attempt == 0 and self._skip_offline():
            logger.warning("Auto-save skipped for %s: API not available", self.tree_id)
            with self._lock:
                self.state = AutoSaveState.IDLE
            self.on_status("Offline - changes not saved yet", "warning")
            return None

        with self._lock:
            data = self._pending_data
            generation = self._generation

        self.on_status("Saving...", "saving")

        try:
            result = self.client.auto_save_tree(self.tree_id, data)
        except FamilyTreeError as e:
            self._handle_failure(e, attempt, generation)
            return None
        except Exception as e:
            logger.exception("Auto-save of %s crashed", self.tree_id)
            self._give_up(e)
            return None

        self._handle_success(result, generation)
        return result

    def _handle_success(self, result: dict[str, Any], generation: int) -> None:
        with self._lock:
            self.last_save_time = utc_now()
            self.last_error = None
            self.save_count += 1

            if generation == self._generation:
                self._pending_data = None
                self._has_pending = False
                self.client.pending_changes = False
                self.state = AutoSaveState.IDLE
            else:
                # edits arrived while saving: their debounce takes over
                self._reschedule_newer_edit()

        logger.info("Auto-saved %s (save #%d)", self.tree_id, self.save_count)
        if self.on_save:
            self.on_save(result)
        self.on_status("Auto-saved", "success")

    def _handle_failure(self, error: Exception, attempt: int, generation: int) -> None:
        logger.error("Auto-save of %s failed (attempt %d): %s", self.tree_id, attempt + 1, error)

        with self._lock:
            self.last_error = error

            if generation != self._generation:
                self._reschedule_newer_edit()
                return

            if attempt < self.max_retries:
                self.state = AutoSaveState.RETRY_SCHEDULED
                self._schedule(self.retry_delay_ms, attempt=attempt + 1)
                retrying = True
            else:
                retrying = False

        if retrying:
            self.on_status(
                f"Save failed, retrying... ({attempt + 1}/{self.max_retries})", "error"
            )
            return

        self._give_up(error)

    def _give_up(self, error: Exception) -> None:
        """No more attempts; the change stays pending until the next edit."""
        with self._lock:
            self.last_error = error
            self.state = AutoSaveState.IDLE

        self.on_status("Save failed - check connection", "error")
        if self.on_error:
            self.on_error(error)

    def _reschedule_newer_edit(self) -> None:
        """Caller holds the lock."""
        self.state = AutoSaveState.PENDING_SAVE
        if self._timer is None:
            self._schedule(self.delay_ms, attempt=0)


__all__ = ["AutoSaveState", "AutoSaveCoordinator"]
