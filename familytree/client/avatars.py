from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
from typing import Any
from urllib.parse import unquote_to_bytes

from familytree.client.persistence_client import PersistenceClient
from familytree.core.errors import FamilyTreeError, InvalidInputError

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*?)(?P<base64>;base64)?,(?P<payload>.*)$",
    re.DOTALL,
)


def is_pending_avatar(value: Any) -> bool:
    """data:/blob: URLs live only in the editor until they are uploaded."""
    if not isinstance(value, str):
        return False
    value = value.strip()
    return value.startswith("data:") or value.startswith("blob:")


def decode_data_url(url: str) -> tuple[bytes, str]:
    """data:image/png;base64,iVBOR... → (bytes, "image/png")"""
    match = DATA_URL_RE.match(url.strip())
    if not match:
        raise InvalidInputError("Not a data URL")

    mime = match.group("mime") or "text/plain"
    payload = match.group("payload")

    if match.group("base64"):
        try:
            content = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise InvalidInputError(f"Bad base64 payload: {e}") from e
    else:
        content = unquote_to_bytes(payload)

    return content, mime


def _avatar_holder(person: dict[str, Any]) -> dict[str, Any]:
    """Charting library keeps avatar under person["data"], older data at the top."""
    nested = person.get("data")
    if isinstance(nested, dict) and "avatar" in nested:
        return nested
    return person


def ensure_avatar_uploaded(
    client: PersistenceClient,
    tree_id: str,
    person: Any,
) -> bool:
    """
    Upload a pending data: URL avatar and point the person at the server copy.

    Returns True when the person was changed. Upload problems are logged and
    the person is left as is, so a save is never blocked by an avatar.
    """
    if not isinstance(person, dict):
        logger.warning("ensure_avatar_uploaded: invalid person %r", person)
        return False

    holder = _avatar_holder(person)
    avatar = holder.get("avatar")
    if not is_pending_avatar(avatar):
        return False

    avatar = avatar.strip()
    if avatar.startswith("blob:"):
        logger.warning("Cannot resolve blob avatar for person %s outside the browser", person.get("id"))
        return False

    try:
        content, mime = decode_data_url(avatar)
        ext = mimetypes.guess_extension(mime) or ".jpg"
        result = client.upload_avatar(tree_id, content, f"avatar{ext}", mime)
    except FamilyTreeError as e:
        logger.error("Failed to upload avatar for person %s: %s", person.get("id"), e)
        return False

    holder["avatar"] = client.absolute_url(result["imageUrl"])
    logger.info("Avatar uploaded to server: %s", holder["avatar"])
    return True


def ensure_avatars_uploaded(
    client: PersistenceClient,
    tree_id: str,
    data: list[Any],
) -> int:
    """Run ensure_avatar_uploaded over a whole tree; returns how many changed."""
    return sum(1 for person in data or [] if ensure_avatar_uploaded(client, tree_id, person))


__all__ = [
    "decode_data_url",
    "ensure_avatar_uploaded",
    "ensure_avatars_uploaded",
    "is_pending_avatar",
]
