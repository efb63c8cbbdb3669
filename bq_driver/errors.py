from __future__ import annotations

from typing import Optional

from google.api_core import exceptions as api_exceptions

# BigQuery message fragments the catalog paths recover from.
PERMISSION_DENIED_MESSAGE = "Permission bigquery.tables.get denied on table"
NOT_FOUND_MESSAGE = "Not found"


class DriverError(Exception):
    pass


class ConfigurationError(DriverError):
    pass


class RemoteJobError(DriverError):
    def __init__(self, message: str, job_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class PollTimeoutError(DriverError):
    def __init__(self, timeout_ms: int, job_id: Optional[str] = None) -> None:
        super().__init__(f"BigQuery job timeout reached {timeout_ms}ms")
        self.timeout_ms = timeout_ms
        self.job_id = job_id


def is_permission_denied(exc: BaseException) -> bool:
    return PERMISSION_DENIED_MESSAGE in str(exc)


def is_not_found(exc: BaseException) -> bool:
    if isinstance(exc, api_exceptions.NotFound):
        return True
    return NOT_FOUND_MESSAGE in str(exc)
