import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable

from familytree.config import settings
from familytree.core.errors import (
    InvalidInputError,
    IOFailureError,
    NotFoundError,
    TooLargeError,
)
from familytree.core.tree_store import validate_tree_id
from familytree.utils.urls import image_url

logger = logging.getLogger(__name__)


# ==========================================================
# LIMITS
# ==========================================================
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


@dataclass(frozen=True)
class StoredImage:
    filename: str
    url: str
    path: str
    original_name: str = ""
    size: int = 0


# ==========================================================
# HELPERS
# ==========================================================
def file_size(fileobj: BinaryIO) -> int:
    fileobj.seek(0, os.SEEK_END)
    size = fileobj.tell()
    fileobj.seek(0)
    return size


def sanitize_basename(original_name: str) -> tuple[str, str]:
    """
    "My Photo (1).JPG" → ("My-Photo--1-", ".JPG")
    """
    base = os.path.basename((original_name or "").replace("\\", "/"))
    stem, ext = os.path.splitext(base)
    return re.sub(r"[^a-zA-Z0-9]", "-", stem), ext


def validate_image_filename(filename: str) -> str:
    if not filename or ".." in filename or "/" in filename or "\\" in filename:
        raise InvalidInputError("Invalid filename")
    return filename


# ==========================================================
# IMAGE STORE
# ==========================================================
class ImageStore:
    """Avatar images, one sub folder per tree."""

    def __init__(
        self,
        images_dir: str | Path | None = None,
        max_bytes: int | None = None,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.images_dir = Path(images_dir or settings.IMAGES_DIR)
        self.max_bytes = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
        self.clock_ms = clock_ms

    def ensure_directories(self) -> None:
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def tree_dir(self, tree_id: str) -> Path:
        return self.images_dir / validate_tree_id(tree_id)

    def _unique_filename(self, folder: Path, stem: str, ext: str) -> str:
        stamp = self.clock_ms()
        filename = f"{stem}-{stamp}{ext}"

        # same name in the same millisecond: move the stamp forward instead of overwriting
        while (folder / filename).exists():
            stamp += 1
            filename = f"{stem}-{stamp}{ext}"
        return filename

    # ------------------------------------------------------
    # UPLOAD
    # ------------------------------------------------------
    def upload(
        self,
        tree_id: str,
        fileobj: BinaryIO,
        original_name: str,
        mime_type: str | None,
    ) -> StoredImage:
        folder = self.tree_dir(tree_id)

        if not mime_type or not mime_type.startswith("image/"):
            raise InvalidInputError("Only image files are allowed")

        size = file_size(fileobj)
        if size > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise TooLargeError(f"Image too large (max {limit_mb:g}MB).")

        stem, ext = sanitize_basename(original_name)

        try:
            folder.mkdir(parents=True, exist_ok=True)
            filename = self._unique_filename(folder, stem, ext)
            file_path = folder / filename

            with open(file_path, "wb") as buffer:
                shutil.copyfileobj(fileobj, buffer)
        except OSError as e:
            raise IOFailureError(f"Could not store image: {e}") from e

        logger.info("Uploaded avatar for %s: %s (%d bytes)", tree_id, filename, size)

        return StoredImage(
            filename=filename,
            url=image_url(tree_id, filename),
            path=str(file_path),
            original_name=original_name,
            size=size,
        )

    # ------------------------------------------------------
    # LIST
    # ------------------------------------------------------
    def list_images(self, tree_id: str) -> list[StoredImage]:
        folder = self.tree_dir(tree_id)

        try:
            names = sorted(os.listdir(folder))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise IOFailureError(f"Could not list images: {e}") from e

        return [
            StoredImage(
                filename=name,
                url=image_url(tree_id, name),
                path=str(folder / name),
            )
            for name in names
            if name.lower().endswith(IMAGE_EXTENSIONS)
        ]

    # ------------------------------------------------------
    # DELETE
    # ------------------------------------------------------
    def delete(self, tree_id: str, filename: str) -> None:
        validate_image_filename(filename)
        file_path = self.tree_dir(tree_id) / filename

        try:
            os.remove(file_path)
        except FileNotFoundError as e:
            raise NotFoundError("Image not found") from e
        except OSError as e:
            raise IOFailureError(f"Could not delete image: {e}") from e

        logger.info("Deleted image for %s: %s", tree_id, filename)
