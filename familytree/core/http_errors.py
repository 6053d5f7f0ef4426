import logging
from typing import Any

from fastapi import HTTPException

from familytree.core.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


def to_http_exception(
    exc: Exception,
    failure: str,
    *,
    not_found: str | None = None,
    **extra: Any,
) -> HTTPException:
    """
    Store error → HTTPException carrying the envelope fields as detail.

    NotFound → 404, InvalidInput (incl. TooLarge) → 400, anything else → 500.
    """
    if isinstance(exc, NotFoundError):
        return HTTPException(404, {"error": not_found or str(exc), **extra})

    if isinstance(exc, InvalidInputError):
        return HTTPException(400, {"error": str(exc), **extra})

    logger.exception("%s: %s", failure, exc)
    return HTTPException(500, {"error": failure, "message": str(exc), **extra})
