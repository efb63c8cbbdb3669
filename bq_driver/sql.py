from __future__ import annotations

import re
from typing import List

PROBE_CTE_NAME = "ORIGIN"
TYPEOF_FUNCTION = "bqutil.fn.typeof"

_BARE_IDENTIFIER = re.compile(r"^[a-z0-9_]+$")


def quote_identifier(identifier: str) -> str:
    # A part that needs quoting is replaced by the whole identifier in
    # backticks, not just that part.
    parts = identifier.split(".")
    return ".".join(part if _BARE_IDENTIFIER.match(part) else f"`{identifier}`" for part in parts)


def quote_column(name: str) -> str:
    return f"`{name}`"


def probe_sql(sql: str) -> str:
    return f"{sql.rstrip().rstrip(';').rstrip()} LIMIT 1"


def type_probe_sql(row_sql: str, columns: List[str]) -> str:
    selected = ", ".join(f"{TYPEOF_FUNCTION}({quote_column(c)}) AS {quote_column(c)}" for c in columns)
    return f"WITH {PROBE_CTE_NAME} AS ({row_sql}) SELECT {selected} FROM {PROBE_CTE_NAME}"


def export_data_sql(uri: str, sql: str) -> str:
    return (
        "EXPORT DATA OPTIONS ("
        f"uri='{uri}', "
        "format='CSV', "
        "overwrite=true, "
        "header=true, "
        "field_delimiter=',', "
        "compression='GZIP'"
        f") AS {sql}"
    )


def information_schema_columns_sql() -> str:
    return (
        "SELECT "
        f"columns.column_name AS {quote_identifier('column_name')}, "
        f"columns.table_name AS {quote_identifier('table_name')}, "
        f"columns.table_schema AS {quote_identifier('table_schema')}, "
        f"columns.data_type AS {quote_identifier('data_type')} "
        "FROM INFORMATION_SCHEMA.COLUMNS AS columns"
    )
