from typing import Any


class FamilyTreeError(Exception):
    """Base class for everything the stores and the client raise."""


class NotFoundError(FamilyTreeError):
    """Requested tree, backup or image does not exist."""


class InvalidInputError(FamilyTreeError):
    """Bad filename, wrong MIME type, path traversal attempt, etc."""


class TooLargeError(InvalidInputError):
    """Upload exceeds the configured size limit."""


class IOFailureError(FamilyTreeError):
    """Disk read/write failed for a reason other than a missing file."""


class UpstreamUnavailableError(FamilyTreeError):
    """Client side: the API could not be reached (or is known offline)."""


class ApiResponseError(FamilyTreeError):
    """Client side: the API answered with a non-2xx status."""

    def __init__(self, status_code: int, payload: Any = None):
        self.status_code = status_code
        self.payload = payload

        error = None
        if isinstance(payload, dict):
            error = payload.get("error")

        super().__init__(f"API call failed: {status_code} {error or ''}".strip())
