"""Error types raised by the notification pipeline."""

from typing import List, Optional, Tuple


class OctotermError(Exception):
    """Base class for every error the pipeline surfaces to the UI."""


class AuthenticationError(OctotermError):
    """Missing or rejected GitHub credential. Fatal to the session."""


class RateLimitError(OctotermError):
    """GitHub refused the request because the rate limit was hit."""


class RemoteError(OctotermError):
    """A REST or GraphQL call failed or returned a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(RemoteError):
    """A page fetch or mark-as-read call failed."""


class ResolveError(RemoteError):
    """A secondary lookup for one notification failed."""

    def __init__(self, stub_id: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"notification {stub_id}: {message}", status_code)
        self.stub_id = stub_id


class HydrationError(OctotermError):
    """One or more notifications could not be hydrated."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = failures
        ids = ", ".join(stub_id for stub_id, _ in failures[:5])
        if len(failures) > 5:
            ids += ", ..."
        super().__init__(f"failed to hydrate {len(failures)} notification(s): {ids}")


class TaskAggregationError(HydrationError):
    """A hydration task crashed or was cancelled instead of returning."""


class NoBrowsableUrlError(OctotermError):
    """The notification has no URL that can be opened in a browser."""


class NotificationNotFoundError(OctotermError):
    """The requested notification is not (or no longer) in the inbox."""
