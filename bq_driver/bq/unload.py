from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, List, Optional, Sequence

from google.cloud import bigquery, storage

from ..app_model import ColumnType, UnloadOptions, UnloadResult
from ..errors import ConfigurationError
from ..sql import export_data_sql
from .client import table_reference
from .jobs import JobPoller
from .query import QueryExecutor
from .schema import SchemaProber

logger = logging.getLogger(__name__)

SIGNED_URL_TTL = timedelta(hours=1)
SHARD_PATTERN = "*.csv.gz"


class UnloadPipeline:
    """Exports a query result or a table to the export bucket as gzipped CSV.

    Either path ends with the files found under ``{table}/`` in the bucket,
    each exposed through a read-only signed URL valid for one hour.
    """

    def __init__(
        self,
        client: bigquery.Client,
        bucket: Optional[storage.Bucket],
        poller: JobPoller,
        executor: QueryExecutor,
        prober: SchemaProber,
        csv_escape_symbol: Optional[str] = None,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.poller = poller
        self.executor = executor
        self.prober = prober
        self.csv_escape_symbol = csv_escape_symbol

    def _require_bucket(self) -> storage.Bucket:
        if self.bucket is None:
            raise ConfigurationError("Export bucket misconfigured.")
        return self.bucket

    def destination_uri(self, table: str) -> str:
        return f"gs://{self._require_bucket().name}/{table}/{SHARD_PATTERN}"

    def unload(self, table: str, options: Optional[UnloadOptions] = None) -> UnloadResult:
        self._require_bucket()
        options = options or UnloadOptions()
        if options.query:
            types = self.unload_with_sql(table, options.query.sql, options.query.params)
        else:
            types = self.unload_with_table(table)
        csv_file = self.csv_files(table)
        logger.info("Unloaded %s into %d file(s)", table, len(csv_file))
        return UnloadResult(
            table=table,
            types=types,
            csv_file=csv_file,
            csv_no_header=False,
            export_bucket_csv_escape_symbol=self.csv_escape_symbol,
        )

    def unload_with_sql(self, table: str, sql: str, params: Sequence[Any] = ()) -> List[ColumnType]:
        types = self.prober.column_types_for_query(sql, params)
        self.executor.execute(export_data_sql(self.destination_uri(table), sql), params)
        return types

    def unload_with_table(self, table: str) -> List[ColumnType]:
        types = self.prober.column_types_for_table(table)
        job_config = bigquery.ExtractJobConfig(
            destination_format=bigquery.DestinationFormat.CSV,
            compression=bigquery.Compression.GZIP,
        )
        handle = self.client.extract_table(
            table_reference(self.client, table),
            self.destination_uri(table),
            job_config=job_config,
        )
        self.poller.await_terminal(self.poller.track(handle), want_results=False, options={"table": table})
        return types

    def csv_files(self, table: str) -> List[str]:
        bucket = self._require_bucket()
        return [
            blob.generate_signed_url(version="v4", expiration=SIGNED_URL_TTL, method="GET")
            for blob in bucket.list_blobs(prefix=f"{table}/")
        ]
