"""Exception taxonomy for the ingestion pipeline."""

from typing import Literal

FetchCause = Literal["timeout", "http_status", "network"]


class IngestionError(Exception):
    """Base class for all ingestion errors."""


class FetchError(IngestionError):
    """A single network retrieval failed."""

    def __init__(
        self,
        url: str,
        cause: FetchCause,
        message: str = "",
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.cause = cause
        self.status_code = status_code
        detail = message or cause
        if status_code is not None:
            detail = f"HTTP {status_code}: {detail}"
        super().__init__(f"Fetch failed for {url} ({cause}): {detail}")

    @property
    def retryable(self) -> bool:
        return self.cause in ("timeout", "network")


class ParseError(IngestionError):
    """Upstream content could not be parsed."""


class DuplicateError(IngestionError):
    """The update is already stored."""

    def __init__(self, update_id: str) -> None:
        self.update_id = update_id
        super().__init__(f"Update already exists: {update_id}")


class StorageError(IngestionError):
    """The persistence gateway failed to store an update."""


class SourceNotFoundError(IngestionError, KeyError):
    """No source is registered under the requested id."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Source not found: {source_id}")

    def __str__(self) -> str:
        return f"Source not found: {self.source_id}"
