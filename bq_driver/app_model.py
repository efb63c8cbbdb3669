from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

Row = Dict[str, Any]


class PollStatus(str, Enum):
    RUNNING = "RUNNING"
    DONE_OK = "DONE_OK"
    DONE_ERROR = "DONE_ERROR"


class JobPhase(str, Enum):
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class PollState:
    status: PollStatus
    message: Optional[str] = None
    statistics: Optional[Dict[str, Any]] = None

    @property
    def done(self) -> bool:
        return self.status is not PollStatus.RUNNING


@dataclass
class Job:
    job_id: str
    handle: Any
    sql: Optional[str] = None
    params: List[Any] = field(default_factory=list)
    destination: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    phase: JobPhase = JobPhase.SUBMITTED


@dataclass(frozen=True)
class ColumnType:
    name: str
    type: str


@dataclass
class JobResult:
    rows: List[Row]
    columns: List[str]
    column_types: Dict[str, str] = field(default_factory=dict)


@dataclass
class MemoryResult:
    rows: List[Row]
    types: List[ColumnType]

    def release(self) -> None:
        return None


@dataclass
class StreamResult:
    row_stream: Iterator[Row]
    types: List[ColumnType]
    release: Callable[[], None]


@dataclass
class QueryOptions:
    stream_import: bool = False
    page_size: Optional[int] = None
    request_id: Optional[str] = None


@dataclass
class UnloadQuery:
    sql: str
    params: List[Any] = field(default_factory=list)


@dataclass
class UnloadOptions:
    query: Optional[UnloadQuery] = None


@dataclass
class UnloadResult:
    table: str
    types: List[ColumnType]
    csv_file: List[str]
    csv_no_header: bool = False
    export_bucket_csv_escape_symbol: Optional[str] = None


@dataclass(frozen=True)
class SchemaEntry:
    table_schema: str
    table_name: str
    column_name: str
    data_type: str
