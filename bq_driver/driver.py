from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from google.cloud import bigquery, storage

from .app_model import ColumnType, MemoryResult, QueryOptions, Row, StreamResult, UnloadOptions, UnloadResult
from .bq.client import get_bucket, get_client
from .bq.jobs import JobPoller
from .bq.metadata import CatalogReader, TablesSchema
from .bq.query import QueryExecutor, open_query_stream
from .bq.schema import SchemaProber
from .bq.types import to_generic_type
from .bq.unload import UnloadPipeline
from .config import ConfigLoader, DriverOptions
from .sql import quote_identifier
from .usage import UsageHook, make_usage_hook

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


class BigQueryDriver:
    """BigQuery driver for the federation engine.

    Collaborators are built once from ``DriverOptions``; after construction the
    driver holds no mutable state, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        options: Optional[DriverOptions] = None,
        client: Optional[bigquery.Client] = None,
        bucket: Optional[storage.Bucket] = None,
        usage_hook: Optional[UsageHook] = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or DriverOptions.from_config(ConfigLoader().load())
        self.client = client if client is not None else get_client(self.options)
        self.bucket = bucket if bucket is not None else get_bucket(self.options)
        self.poller = JobPoller(
            self.client,
            self.options.poll_timeout_ms,
            self.options.poll_max_interval_ms,
            usage_hook=usage_hook or make_usage_hook(self.options.usage_log),
            sleep=sleep,
            clock=clock,
        )
        self.executor = QueryExecutor(self.poller)
        self.prober = SchemaProber(self.client, self.executor)
        self.catalog = CatalogReader(self.client, self.executor)
        self.unloader = UnloadPipeline(
            self.client,
            self.bucket,
            self.poller,
            self.executor,
            self.prober,
            csv_escape_symbol=self.options.export_bucket_csv_escape_symbol,
        )

    @staticmethod
    def default_concurrency() -> int:
        return DEFAULT_CONCURRENCY

    @staticmethod
    def driver_env_variables() -> List[str]:
        return ["BQ_DRIVER_PROJECT_ID", "BQ_DRIVER_KEY_FILE"]

    def read_only(self) -> bool:
        return bool(self.options.read_only)

    def capabilities(self) -> Dict[str, bool]:
        return {"unload_without_temp_table": True}

    def test_connection(self) -> None:
        self.executor.execute("SELECT ? AS number", ["1"])

    def is_unload_supported(self) -> bool:
        return self.bucket is not None

    def query(self, sql: str, params: Sequence[Any] = (), options: Optional[Dict[str, Any]] = None) -> List[Row]:
        return self.executor.execute(sql, params, options)

    def query_column_types(self, sql: str, params: Sequence[Any] = ()) -> List[ColumnType]:
        return self.prober.column_types_for_query(sql, params)

    def table_column_types(self, table: str) -> List[ColumnType]:
        return self.prober.column_types_for_table(table)

    def to_generic_type(self, type_name: str) -> str:
        return to_generic_type(type_name)

    def download_query_results(
        self,
        sql: str,
        params: Sequence[Any] = (),
        options: Optional[QueryOptions] = None,
    ) -> Union[MemoryResult, StreamResult]:
        options = options or QueryOptions()
        types = self.query_column_types(sql, params)
        if options.stream_import:
            return self._materialize_stream(sql, params, types, options)
        return self._materialize_memory(sql, params, types, options)

    def memory(self, sql: str, params: Sequence[Any] = ()) -> MemoryResult:
        return self.download_query_results(sql, params, QueryOptions(stream_import=False))

    def stream(self, sql: str, params: Sequence[Any] = (), page_size: Optional[int] = None) -> StreamResult:
        return self.download_query_results(sql, params, QueryOptions(stream_import=True, page_size=page_size))

    def _materialize_memory(
        self, sql: str, params: Sequence[Any], types: List[ColumnType], options: QueryOptions
    ) -> MemoryResult:
        rows = self.executor.execute(sql, params, {"request_id": options.request_id})
        return MemoryResult(rows=rows, types=types)

    def _materialize_stream(
        self, sql: str, params: Sequence[Any], types: List[ColumnType], options: QueryOptions
    ) -> StreamResult:
        row_stream = open_query_stream(self.client, sql, params, page_size=options.page_size)
        return StreamResult(row_stream=row_stream, types=types, release=row_stream.close)

    def unload(self, table: str, options: Optional[UnloadOptions] = None) -> UnloadResult:
        return self.unloader.unload(table, options)

    def load_pre_aggregation_into_table(
        self,
        table: str,
        load_sql: str,
        params: Sequence[Any] = (),
        options: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return self.executor.load_into_table(table, load_sql, params, options)

    def tables_schema(self) -> TablesSchema:
        return self.catalog.tables_schema()

    def get_tables_query(self, schema_name: str) -> List[Dict[str, str]]:
        return [{"table_name": name} for name in self.catalog.list_tables(schema_name)]

    def create_schema_if_not_exists(self, schema_name: str) -> None:
        self.catalog.create_schema_if_not_exists(schema_name)

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier)
