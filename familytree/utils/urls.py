from urllib.parse import urlsplit


def image_url(tree_id: str, filename: str) -> str:
    return f"/images/{tree_id}/{filename}"


def absolute_media_url(path: str | None, base_url: str) -> str | None:
    """
    Turn a server-relative path (/images/...) into an absolute URL
    on the same origin as base_url (which may carry an /api suffix).
    """
    if not path:
        return None

    # already absolute → leave it
    if path.startswith("http://") or path.startswith("https://"):
        return path

    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}{path}"
