"""
Error taxonomy for the dashboard core.

None of these represent a failed *query*: a query that errored is a normal
terminal snapshot carrying a ``failureInfo`` payload.
"""

from __future__ import annotations


class QueryMonitorError(Exception):
    """Base class for dashboard infrastructure errors."""


class ParseError(QueryMonitorError, ValueError):
    """A duration or data-size value could not be parsed."""

    def __init__(self, value: object, kind: str) -> None:
        self.value = value
        self.kind = kind
        super().__init__(f"Invalid {kind} value: {value!r}")


class FetchError(QueryMonitorError):
    """The status endpoint could not be reached or returned an error status."""

    def __init__(self, path: str, message: str, status_code: int | None = None) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(f"Fetch of {path} failed: {message}")


class MalformedSnapshotError(QueryMonitorError):
    """The status endpoint answered with a payload that is not a query snapshot."""
