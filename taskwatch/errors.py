"""Error kinds raised by the task server client and the sync engines."""


class SyncError(Exception):
    """Base class for every classified sync failure."""

    kind = "sync_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class HealthCheckFailed(SyncError):
    """The server health probe returned non-2xx or could not be reached."""

    kind = "health_check_failed"


class FetchFailed(SyncError):
    """Fetching completed tasks failed at the transport or HTTP level."""

    kind = "fetch_failed"


class TransportDropped(SyncError):
    """A live WebSocket connection was closed or could not be opened."""

    kind = "transport_dropped"


class InvalidResponse(SyncError):
    """The server answered with malformed JSON or an unexpected shape."""

    kind = "invalid_response"


class ConfigurationInvalid(SyncError):
    """Configuration cannot be used, e.g. a malformed connection target."""

    kind = "configuration_invalid"
