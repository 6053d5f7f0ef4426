"""HTTP client for the family tree API.

Tracks two bits of state the UI cares about:

- ``is_online``: flipped to False whenever a call fails, back to True by
  a successful :meth:`PersistenceClient.check_connection`.
- ``pending_changes``: True between a queued edit and its confirmed save
  (the auto-save coordinator maintains it).

Every method logs and re-raises on failure; callers decide what the UI does.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from familytree.client.interfaces import ChartView, StatusCallback, log_status
from familytree.config import settings
from familytree.core.errors import (
    ApiResponseError,
    FamilyTreeError,
    InvalidInputError,
    UpstreamUnavailableError,
)
from familytree.utils.urls import absolute_media_url

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


class PersistenceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Any = None,
        timeout: Optional[float] = None,
        on_status: Optional[StatusCallback] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        # anything with a requests-style .request(method, url, **kwargs)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.on_status = on_status or log_status

        self.is_online = True
        self.pending_changes = False

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    def _api_call(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        json_body: Any = None,
        files: Optional[dict] = None,
    ) -> Any:
        url = f"{self.base_url}{endpoint}"

        kwargs: dict[str, Any] = {}
        if json_body is not None:
            kwargs["json"] = json_body
        if files is not None:
            kwargs["files"] = files
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error("API call error: %s %s: %s", method, url, e)
            self.is_online = False
            raise UpstreamUnavailableError(str(e)) from e
        except (TypeError, ValueError) as e:
            # body could not be encoded (e.g. a set inside the tree data)
            logger.error("API call error: %s %s: %s", method, url, e)
            self.is_online = False
            raise InvalidInputError(f"Request could not be sent: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not 200 <= response.status_code < 300 or payload is None:
            logger.error("API call failed: %s %s -> %s", method, url, response.status_code)
            self.is_online = False
            raise ApiResponseError(response.status_code, payload)

        return payload

    def absolute_url(self, path: str) -> Optional[str]:
        return absolute_media_url(path, self.base_url)

    # ------------------------------------------------------------------
    # connection
    # ------------------------------------------------------------------
    def check_connection(self) -> bool:
        try:
            self._api_call("/health")
        except FamilyTreeError as e:
            self.is_online = False
            logger.warning("Family Tree API not available: %s", e)
            return False

        self.is_online = True
        logger.info("Connected to Family Tree API at %s", self.base_url)
        return True

    def get_status(self) -> dict[str, Any]:
        return {
            "is_online": self.is_online,
            "pending_changes": self.pending_changes,
            "base_url": self.base_url,
        }

    # ------------------------------------------------------------------
    # trees
    # ------------------------------------------------------------------
    def get_trees(self) -> dict[str, Any]:
        return self._api_call("/trees")

    def get_initial(self, tree_id: str) -> list[Any]:
        return self._api_call(f"/initial/{_segment(tree_id)}")

    def load_tree(self, tree_id: str) -> dict[str, Any]:
        return self._api_call(f"/trees/{_segment(tree_id)}")

    def save_tree(
        self,
        tree_id: str,
        data: list[Any],
        metadata: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        return self._api_call(
            f"/trees/{_segment(tree_id)}",
            "POST",
            json_body={"data": data, "metadata": metadata or {}},
        )

    def auto_save_tree(self, tree_id: str, data: list[Any]) -> dict[str, Any]:
        return self._api_call(
            f"/trees/{_segment(tree_id)}/autosave",
            "PUT",
            json_body={"data": data},
        )

    def delete_tree(self, tree_id: str) -> dict[str, Any]:
        return self._api_call(f"/trees/{_segment(tree_id)}", "DELETE")

    def get_backups(self, tree_id: str) -> dict[str, Any]:
        return self._api_call(f"/trees/{_segment(tree_id)}/backups")

    def restore_from_backup(self, tree_id: str, backup_filename: str) -> dict[str, Any]:
        return self._api_call(
            f"/trees/{_segment(tree_id)}/restore/{_segment(backup_filename)}",
            "POST",
        )

    # ------------------------------------------------------------------
    # images
    # ------------------------------------------------------------------
    def upload_avatar(
        self,
        tree_id: str,
        content: bytes,
        filename: str,
        mime_type: str = "image/jpeg",
    ) -> dict[str, Any]:
        return self._api_call(
            f"/images/{_segment(tree_id)}/upload",
            "POST",
            files={"avatar": (filename, content, mime_type)},
        )

    def list_images(self, tree_id: str) -> dict[str, Any]:
        return self._api_call(f"/images/{_segment(tree_id)}")

    def delete_image(self, tree_id: str, filename: str) -> dict[str, Any]:
        return self._api_call(
            f"/images/{_segment(tree_id)}/{_segment(filename)}",
            "DELETE",
        )

    # ------------------------------------------------------------------
    # chart glue
    # ------------------------------------------------------------------
    def load_and_initialize(self, tree_id: str, chart: ChartView) -> dict[str, Any]:
        """Load a tree and, when it has people, push them into the chart."""
        try:
            response = self.load_tree(tree_id)
        except FamilyTreeError:
            logger.exception("Failed to load %s", tree_id)
            self.on_status("Load failed", "error")
            raise

        data = response.get("data") or []
        if data:
            logger.info("Loaded %s with %d people", tree_id, len(data))
            chart.set_data(data)
            chart.update_tree(initial=True)
            self.on_status("Tree loaded", "success")
        else:
            logger.info("%s is empty or new", tree_id)
            self.on_status("New tree created", "info")

        return response
