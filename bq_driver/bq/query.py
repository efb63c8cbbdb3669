from __future__ import annotations

import datetime
import decimal
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from google.cloud import bigquery

from ..app_model import JobResult, Row
from .client import build_job_config
from .jobs import JobPoller

logger = logging.getLogger(__name__)


def normalize_value(value: Any) -> Any:
    """Flatten the client's boxed scalars to their string payload.

    NUMERIC/BIGNUMERIC come back as ``Decimal`` and temporal types as
    ``datetime``/``date``/``time``; everything else passes through as is.
    """
    if isinstance(value, decimal.Decimal):
        return format(value, "f")
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    return value


def normalize_row(row: Dict[str, Any]) -> Row:
    return {key: normalize_value(value) for key, value in row.items()}


def hydrate_rows(rows: Iterable[Any]) -> Iterator[Row]:
    for row in rows:
        yield normalize_row(dict(row.items()))


class QueryExecutor:
    def __init__(self, poller: JobPoller) -> None:
        self.poller = poller

    def execute_with_schema(
        self,
        sql: str,
        params: Sequence[Any] = (),
        options: Optional[Dict[str, Any]] = None,
        default_dataset: Optional[str] = None,
        location: Optional[str] = None,
    ) -> JobResult:
        job = self.poller.submit(sql, params, default_dataset=default_dataset, location=location)
        result = self.poller.await_terminal(job, want_results=True, options=options)
        result.rows = [normalize_row(row) for row in result.rows]
        return result

    def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        options: Optional[Dict[str, Any]] = None,
        default_dataset: Optional[str] = None,
        location: Optional[str] = None,
    ) -> List[Row]:
        return self.execute_with_schema(sql, params, options, default_dataset, location).rows

    def load_into_table(
        self,
        destination: str,
        sql: str,
        params: Sequence[Any] = (),
        options: Optional[Dict[str, Any]] = None,
    ) -> bool:
        job = self.poller.submit(sql, params, destination=destination)
        return self.poller.await_terminal(job, want_results=False, options=options)


def open_query_stream(
    client: bigquery.Client,
    sql: str,
    params: Sequence[Any] = (),
    page_size: Optional[int] = None,
) -> Iterator[Row]:
    rows = client.query_and_wait(sql, job_config=build_job_config(params), page_size=page_size)
    logger.debug("Opened BigQuery row stream (page_size=%s)", page_size)
    return hydrate_rows(rows)
