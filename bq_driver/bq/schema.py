from __future__ import annotations

from typing import Any, List, Sequence

from google.cloud import bigquery

from ..app_model import ColumnType
from ..sql import probe_sql, type_probe_sql
from .client import table_reference
from .query import QueryExecutor
from .types import to_generic_type


class SchemaProber:
    def __init__(self, client: bigquery.Client, executor: QueryExecutor) -> None:
        self.client = client
        self.executor = executor

    def column_types_for_query(self, sql: str, params: Sequence[Any] = ()) -> List[ColumnType]:
        row_sql = probe_sql(sql)
        probe = self.executor.execute_with_schema(row_sql, params)
        if not probe.columns:
            return []

        reported = self.executor.execute(type_probe_sql(row_sql, probe.columns), params)
        # an empty probe leaves typeof() nothing to look at, so those columns
        # take the type from the probe's result schema
        type_row = reported[0] if reported else {}
        types: List[ColumnType] = []
        for name in probe.columns:
            type_name = type_row.get(name)
            if not type_name or str(type_name).upper() == "NULL":
                type_name = probe.column_types.get(name, "")
            types.append(ColumnType(name=name, type=to_generic_type(str(type_name))))
        return types

    def column_types_for_table(self, table: str) -> List[ColumnType]:
        table_meta = self.client.get_table(table_reference(self.client, table))
        return [
            ColumnType(name=field.name, type=to_generic_type(field.field_type))
            for field in table_meta.schema
        ]
