from __future__ import annotations

import re
from typing import Dict

GENERIC_TYPES = ("boolean", "bigint", "double", "date", "timestamp", "text")
DEFAULT_GENERIC_TYPE = "text"

BQ_TYPE_TO_GENERIC_TYPE: Dict[str, str] = {
    "array": "text",
    "bignumeric": "double",
    "bigdecimal": "double",
    "bool": "boolean",
    "boolean": "boolean",
    "bytes": "text",
    "date": "date",
    "datetime": "timestamp",
    "float": "double",
    "float64": "double",
    "geography": "text",
    "int64": "bigint",
    "integer": "bigint",
    "interval": "text",
    "json": "text",
    "numeric": "double",
    "decimal": "double",
    "range": "text",
    "record": "text",
    "string": "text",
    "struct": "text",
    "time": "timestamp",
    "timestamp": "timestamp",
}

# names other engines report, used when BigQuery's own table has no entry
BASE_TYPE_TO_GENERIC_TYPE: Dict[str, str] = {
    "int": "bigint",
    "smallint": "bigint",
    "tinyint": "bigint",
    "bigint": "bigint",
    "real": "double",
    "double": "double",
    "double precision": "double",
    "text": "text",
    "varchar": "text",
    "char": "text",
    "character varying": "text",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamp",
}

_PARAMETERS = re.compile(r"[<(].*$", re.DOTALL)


def to_generic_type(type_name: str) -> str:
    normalized = _PARAMETERS.sub("", (type_name or "").strip()).strip().lower()
    if normalized in BQ_TYPE_TO_GENERIC_TYPE:
        return BQ_TYPE_TO_GENERIC_TYPE[normalized]
    return BASE_TYPE_TO_GENERIC_TYPE.get(normalized, DEFAULT_GENERIC_TYPE)
