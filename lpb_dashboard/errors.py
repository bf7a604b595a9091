"""Exception types raised by the ingestion pipeline."""


class DashboardError(Exception):
    """Base class for pipeline errors."""


class ParseError(DashboardError):
    """Delimited text could not be turned into rows."""


class FetchError(DashboardError):
    """A backend request failed, timed out, or returned an unexpected payload.

    status is the HTTP status code, or None for transport failures.
    """

    def __init__(self, detail: str, status: int | None = None, source: str = ""):
        self.detail = detail
        self.status = status
        self.source = source
        prefix = f"{source}: " if source else ""
        code = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"{prefix}{detail}{code}")


class ValidationError(DashboardError):
    """A row has no usable identity key and is excluded from the batch."""


class UploadError(DashboardError):
    """An upload chunk was rejected. chunk is 1-based."""

    def __init__(self, detail: str, chunk: int = 0, status: int | None = None):
        self.detail = detail
        self.chunk = chunk
        self.status = status
        code = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"chunk {chunk}: {detail}{code}")
