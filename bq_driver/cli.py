from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional, Tuple

from .app_model import QueryOptions, StreamResult, UnloadOptions, UnloadQuery
from .config import ConfigLoader, DriverOptions, get_usage_log_path
from .driver import BigQueryDriver
from .errors import DriverError

logger = logging.getLogger(__name__)

Handler = Callable[[BigQueryDriver, Dict[str, Any]], Dict[str, Any]]


def _require(payload: Dict[str, Any], *keys: str) -> Optional[Dict[str, Any]]:
    missing = [key for key in keys if not payload.get(key)]
    if missing:
        return {"ok": False, "error": {"message": f"{', '.join(missing)} required."}}
    return None


def _types(types) -> list:
    return [asdict(t) for t in types]


def _test_connection(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    driver.test_connection()
    return {"ok": True}


def _query(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    rows = driver.query(payload["sql"], payload.get("params") or [])
    return {"ok": True, "rows": rows}


def _download(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    options = QueryOptions(
        stream_import=bool(payload.get("stream")),
        page_size=payload.get("page_size"),
        request_id=payload.get("request_id"),
    )
    result = driver.download_query_results(payload["sql"], payload.get("params") or [], options)
    try:
        rows = list(result.row_stream) if isinstance(result, StreamResult) else result.rows
    finally:
        result.release()
    return {"ok": True, "types": _types(result.types), "rows": rows}


def _column_types(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": True, "types": _types(driver.query_column_types(payload["sql"], payload.get("params") or []))}


def _table_column_types(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": True, "types": _types(driver.table_column_types(payload["table"]))}


def _unload(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    query = None
    if payload.get("sql"):
        query = UnloadQuery(sql=payload["sql"], params=payload.get("params") or [])
    result = driver.unload(payload["table"], UnloadOptions(query=query))
    return {"ok": True, "unload": asdict(result)}


def _tables_schema(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    schema = {
        schema_name: {table: _types(columns) for table, columns in tables.items()}
        for schema_name, tables in driver.tables_schema().items()
    }
    return {"ok": True, "schema": schema}


def _list_tables(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": True, "tables": driver.get_tables_query(payload["schema"])}


def _create_schema(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    driver.create_schema_if_not_exists(payload["schema"])
    return {"ok": True}


def _load_into_table(driver: BigQueryDriver, payload: Dict[str, Any]) -> Dict[str, Any]:
    driver.load_pre_aggregation_into_table(
        payload["table"], payload["sql"], payload.get("params") or [], {"request_id": payload.get("request_id")}
    )
    return {"ok": True}


# op -> (required payload keys, handler)
OPS: Dict[str, Tuple[Tuple[str, ...], Handler]] = {
    "test_connection": ((), _test_connection),
    "query": (("sql",), _query),
    "download": (("sql",), _download),
    "column_types": (("sql",), _column_types),
    "table_column_types": (("table",), _table_column_types),
    "unload": (("table",), _unload),
    "tables_schema": ((), _tables_schema),
    "list_tables": (("schema",), _list_tables),
    "create_schema": (("schema",), _create_schema),
    "load_into_table": (("table", "sql"), _load_into_table),
}


def handle_request(
    payload: Dict[str, Any],
    driver_factory: Callable[[], BigQueryDriver] = BigQueryDriver,
    loader: Optional[ConfigLoader] = None,
) -> Dict[str, Any]:
    op = payload.get("op")

    if op == "get_effective_config":
        loader = loader or ConfigLoader()
        return {
            "ok": True,
            "config": loader.load(),
            "paths": {"config": loader.config_path, "usage": get_usage_log_path()},
        }

    if op not in OPS:
        return {"ok": False, "error": {"message": f"Unknown op {op}."}}
    required, handler = OPS[op]
    problem = _require(payload, *required)
    if problem:
        return problem
    try:
        return handler(driver_factory(), payload)
    except DriverError as exc:
        return {"ok": False, "error": {"message": type(exc).__name__, "detail": str(exc)}}
    except Exception as exc:
        logger.exception("%s failed", op)
        return {"ok": False, "error": {"message": f"{op} failed.", "detail": str(exc)}}


def main() -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("BQ_DRIVER_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    driver: Optional[BigQueryDriver] = None

    def driver_factory() -> BigQueryDriver:
        nonlocal driver
        if driver is None:
            driver = BigQueryDriver(DriverOptions.from_config(ConfigLoader().load()))
        return driver

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
            response = handle_request(payload, driver_factory)
        except Exception as exc:
            response = {"ok": False, "error": {"message": "Unhandled error", "detail": str(exc)}}
        sys.stdout.write(json.dumps(response, ensure_ascii=False, default=str) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    main()
