"""Error taxonomy shared by the bridge, the remote client and the reconciler.

Read paths absorb failures into an empty document where they can; write and
reconciliation paths raise one of these and abort only the current operation.
"""

from typing import Optional


class McpoSyncError(Exception):
    """Base exception for all mcpo-sync errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class AuthError(McpoSyncError):
    """No bearer credential is configured for the remote API."""

    pass


class NotFoundError(McpoSyncError):
    """A compose stack, file or remote model is absent."""

    pass


class FormatError(McpoSyncError):
    """Document text is not a well-formed JSON object."""

    pass


class McpoIOError(McpoSyncError):
    """Helper-process or network failure."""

    pass


class RemoteAPIError(McpoIOError):
    """The remote API returned an error response (4xx/5xx)."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, detail=response_body[:500] or None)


class RemoteNotFoundError(RemoteAPIError, NotFoundError):
    """The remote API answered 404."""

    def __init__(self, message: str, response_body: str = ""):
        super().__init__(message, status_code=404, response_body=response_body)


class ReconciliationError(McpoSyncError):
    """One step of a reconciliation pass failed."""

    pass


def format_error(error: BaseException) -> str:
    """Render an exception as the short message shown to users."""
    if isinstance(error, McpoSyncError):
        return error.message
    return str(error) or error.__class__.__name__
