from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .config import get_usage_log_path

logger = logging.getLogger(__name__)

UsageHook = Callable[[Dict[str, Any], Dict[str, Any]], None]

STATISTIC_ATTRIBUTES = ("total_bytes_processed", "total_bytes_billed", "slot_millis", "cache_hit")


def job_statistics(handle: Any) -> Dict[str, Any]:
    stats: Dict[str, Any] = {"job_id": getattr(handle, "job_id", None)}
    for name in STATISTIC_ATTRIBUTES:
        value = getattr(handle, name, None)
        if value is not None:
            stats[name] = value
    return stats


def append_usage(entry: Dict[str, Any], path: Optional[str] = None) -> None:
    path = path or get_usage_log_path()
    entry = dict(entry)
    entry.setdefault("ts", datetime.now(timezone.utc).isoformat())
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")


def make_usage_hook(persist: bool, path: Optional[str] = None) -> UsageHook:
    def record_query_usage(statistics: Dict[str, Any], options: Dict[str, Any]) -> None:
        logger.info(
            "BigQuery job %s done: %s bytes processed",
            statistics.get("job_id"),
            statistics.get("total_bytes_processed", 0),
        )
        if persist:
            append_usage({**statistics, "request_id": options.get("request_id")}, path)

    return record_query_usage
