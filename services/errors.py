from __future__ import annotations

from typing import Any, Dict, Optional


class IngestError(Exception):
    """
    Base class for recoverable ingestion failures. None of these are fatal to
    the process; the orchestrator decides how far each one propagates.
    """

    stage = "unknown"

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url

    def log_fields(self) -> Dict[str, Any]:
        return {"stage": self.stage, "url": self.url, "error": str(self)}


class FetchError(IngestError):
    """Network, TLS, timeout or non-2xx status."""

    stage = "fetching"

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code

    def log_fields(self) -> Dict[str, Any]:
        fields = super().log_fields()
        fields["status_code"] = self.status_code
        return fields


class FeedParseError(IngestError):
    """Document rejected by both the RSS and the Atom parser."""

    stage = "parsing"


class MappingError(IngestError):
    """
    A required field is absent (e.g. an entry without link). Skips only the
    offending entry.
    """

    stage = "mapping"

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        entry: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.entry = entry or {}


class PersistenceError(IngestError):
    """
    Connectivity loss or a constraint violation other than the expected
    natural-key conflict.
    """

    stage = "persisting"

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        natural_key: Optional[str] = None,
    ) -> None:
        super().__init__(message, url=natural_key)
        self.table = table
        self.natural_key = natural_key

    def log_fields(self) -> Dict[str, Any]:
        fields = super().log_fields()
        fields["table"] = self.table
        return fields


class OpmlParseError(IngestError):
    """Subscription list is not well-formed OPML."""

    stage = "parsing"
