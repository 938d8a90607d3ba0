"""
Error taxonomy for the sync pipeline.

Any failure inside the fetch/transform/upsert loop is fatal to the current
run. ``AlreadyRunningError`` is a rejection, not a failure, and
``TrackerError`` is logged without masking the run's own outcome.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync pipeline errors."""


class FetchError(SyncError):
    """Upstream returned a non-success status or could not be reached."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body
        self.cause = cause


class UpsertError(SyncError):
    """Store write failure.

    ``written`` is the number of records committed before the failing chunk.
    """

    def __init__(self, message: str, written: int = 0, cause: Exception | None = None):
        super().__init__(message)
        self.written = written
        self.cause = cause


class AlreadyRunningError(SyncError):
    """A sync was triggered while another run is still active."""

    def __init__(self, message: str = "A sync is already in progress", run_id: int | None = None):
        super().__init__(message)
        self.run_id = run_id


class TrackerError(SyncError):
    """Run bookkeeping could not be recorded."""

    def __init__(self, message: str, run_id: int | None = None, cause: Exception | None = None):
        super().__init__(message)
        self.run_id = run_id
        self.cause = cause
