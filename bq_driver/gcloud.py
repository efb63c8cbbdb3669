from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOCATION_KEYS = (("bigquery", "location"),)


def read_gcloud_properties() -> Dict[str, Dict[str, Any]]:
    try:
        result = subprocess.run(
            ["gcloud", "config", "list", "--format=json"],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return {}
    if result.returncode != 0:
        logger.debug("gcloud config list failed: %s", result.stderr.strip())
        return {}
    try:
        data = json.loads(result.stdout or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _lookup(properties: Dict[str, Dict[str, Any]], section: str, key: str) -> Optional[str]:
    value = (properties.get(section) or {}).get(key)
    if value in (None, "", "(unset)"):
        return None
    return str(value)


def get_default_project(properties: Optional[Dict[str, Dict[str, Any]]] = None) -> Optional[str]:
    if properties is None:
        properties = read_gcloud_properties()
    return _lookup(properties, "core", "project")


def get_default_location(properties: Optional[Dict[str, Dict[str, Any]]] = None) -> Optional[str]:
    if properties is None:
        properties = read_gcloud_properties()
    for section, key in LOCATION_KEYS:
        value = _lookup(properties, section, key)
        if value:
            return value
    return None
