from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from google.cloud import bigquery

from ..app_model import ColumnType, SchemaEntry
from ..errors import is_not_found, is_permission_denied
from ..sql import information_schema_columns_sql
from .query import QueryExecutor
from .types import to_generic_type

logger = logging.getLogger(__name__)

TablesSchema = Dict[str, Dict[str, List[ColumnType]]]


def fold_schema_entries(entries: Iterable[SchemaEntry]) -> TablesSchema:
    schema: TablesSchema = {}
    for entry in entries:
        tables = schema.setdefault(entry.table_schema, {})
        tables.setdefault(entry.table_name, []).append(
            ColumnType(name=entry.column_name, type=to_generic_type(entry.data_type))
        )
    return schema


class CatalogReader:
    def __init__(self, client: bigquery.Client, executor: QueryExecutor) -> None:
        self.client = client
        self.executor = executor

    def load_tables_for_dataset(self, dataset_id: str, location: Optional[str] = None) -> TablesSchema:
        try:
            rows = self.executor.execute(
                information_schema_columns_sql(),
                default_dataset=f"{self.client.project}.{dataset_id}",
                location=location,
            )
        except Exception as exc:
            if is_permission_denied(exc):
                logger.warning("Skipping dataset %s: %s", dataset_id, exc)
                return {}
            raise
        return fold_schema_entries(
            SchemaEntry(
                table_schema=row["table_schema"],
                table_name=row["table_name"],
                column_name=row["column_name"],
                data_type=row["data_type"],
            )
            for row in rows
        )

    def tables_schema(self) -> TablesSchema:
        merged: TablesSchema = {}
        for dataset in self.client.list_datasets():
            # INFORMATION_SCHEMA has to be queried in the dataset's own location
            location = self.client.get_dataset(dataset.reference).location
            merged.update(self.load_tables_for_dataset(dataset.dataset_id, location))
        return merged

    def list_tables(self, schema_name: str) -> List[str]:
        try:
            return [table.table_id for table in self.client.list_tables(schema_name)]
        except Exception as exc:
            if is_not_found(exc):
                logger.debug("Dataset %s not found", schema_name)
                return []
            raise

    def create_schema_if_not_exists(self, schema_name: str) -> None:
        self.client.create_dataset(schema_name, exists_ok=True)
