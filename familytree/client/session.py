from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from familytree.client.autosave import AutoSaveCoordinator
from familytree.client.avatars import ensure_avatars_uploaded
from familytree.client.interfaces import ChartView, StatusCallback, TreeEditor, log_status
from familytree.client.persistence_client import PersistenceClient
from familytree.core.errors import FamilyTreeError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class TreeEditingSession:
    """
    Everything one open tree needs, passed in explicitly: the API client,
    the chart, its editor and the auto-save coordinator.
    """

    def __init__(
        self,
        tree_id: str,
        client: PersistenceClient,
        chart: ChartView,
        editor: TreeEditor,
        *,
        family_name: Optional[str] = None,
        autosave: Optional[AutoSaveCoordinator] = None,
        on_restored: Optional[Callable[[dict[str, Any]], None]] = None,
        on_status: Optional[StatusCallback] = None,
    ):
        self.tree_id = tree_id
        self.client = client
        self.chart = chart
        self.editor = editor
        self.family_name = family_name or tree_id
        self.on_restored = on_restored
        self.on_status = on_status or log_status
        self.autosave = autosave or AutoSaveCoordinator(
            client, tree_id, on_status=self.on_status
        )

    # --------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------
    def initialize(self) -> dict[str, Any]:
        """Load the tree into the chart (seed data when empty) and start auto-save."""
        online = self.client.check_connection()

        response: dict[str, Any] = {"data": [], "metadata": {}, "lastModified": None}
        if online:
            response = self.client.load_and_initialize(self.tree_id, self.chart)

            if not response.get("data"):
                seed = self.client.get_initial(self.tree_id)
                if seed:
                    logger.info("Using seed data for %s (%d people)", self.tree_id, len(seed))
                    self.chart.set_data(seed)
                    self.chart.update_tree(initial=True)
                    response = {**response, "data": seed}
        else:
            self.on_status("Offline - working locally", "warning")

        self.autosave.attach(self.editor)
        return response

    def close(self) -> None:
        self.autosave.detach()

    # --------------------------------------------------
    # SAVE
    # --------------------------------------------------
    def manual_save(self, extra_metadata: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Full save with backup; pending data: avatars are uploaded first."""
        if not self.client.is_online:
            raise UpstreamUnavailableError("Cannot save: API not available")

        data = self.editor.export_data()

        if ensure_avatars_uploaded(self.client, self.tree_id, data):
            self.chart.set_data(data)
            self.chart.update_tree(initial=False)

        metadata = {
            **(extra_metadata or {}),
            "familyName": self.family_name,
            "source": "manual_save",
        }

        self.autosave.cancel_pending()
        try:
            result = self.client.save_tree(self.tree_id, data, metadata)
        except FamilyTreeError:
            logger.exception("Manual save of %s failed", self.tree_id)
            self.on_status("Save failed", "error")
            raise

        self.autosave.mark_saved()
        logger.info("Manually saved %s (version %s)", self.tree_id, result["metadata"].get("version"))
        self.on_status("Saved successfully", "success")
        return result

    # --------------------------------------------------
    # BACKUPS
    # --------------------------------------------------
    def list_backups(self) -> list[dict[str, Any]]:
        return self.client.get_backups(self.tree_id).get("backups", [])

    def restore_backup(self, backup_filename: str) -> dict[str, Any]:
        """Restore on the server, then redraw the chart in place."""
        try:
            result = self.client.restore_from_backup(self.tree_id, backup_filename)
        except FamilyTreeError:
            logger.exception("Restoring %s from %s failed", self.tree_id, backup_filename)
            self.on_status("Restore failed", "error")
            raise

        self.autosave.mark_saved()
        self.chart.set_data(result.get("data") or [])
        self.chart.update_tree(initial=True)
        self.on_status("Backup restored", "success")

        if self.on_restored:
            self.on_restored(result)
        return result
