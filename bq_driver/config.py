from __future__ import annotations

import base64
import copy
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from platformdirs import user_config_dir, user_state_dir

from .errors import ConfigurationError
from .gcloud import get_default_location, get_default_project, read_gcloud_properties

DEFAULT_SCOPES: Tuple[str, ...] = (
    "https://www.googleapis.com/auth/bigquery",
    "https://www.googleapis.com/auth/drive",
)

SUPPORTED_EXPORT_BUCKET_TYPES = ("gcp",)

DEFAULT_CONFIG: Dict[str, Any] = {
    "driver": {
        "project_id": None,
        "location": None,
        "key_file": None,
        "credentials": None,
        "export_bucket": None,
        "export_bucket_type": "gcp",
        "export_bucket_csv_escape_symbol": None,
        "poll_timeout": 600,
        "poll_max_interval": 5,
        "read_only": True,
        "usage_log": False,
    }
}

# (config key, env variables checked in order)
ENV_OVERRIDES = (
    ("project_id", ("BQ_DRIVER_PROJECT_ID",)),
    ("location", ("BQ_DRIVER_LOCATION",)),
    ("key_file", ("BQ_DRIVER_KEY_FILE",)),
    ("credentials", ("BQ_DRIVER_CREDENTIALS",)),
    ("export_bucket", ("BQ_DRIVER_EXPORT_BUCKET",)),
    ("export_bucket_type", ("BQ_DRIVER_EXPORT_BUCKET_TYPE",)),
    ("export_bucket_csv_escape_symbol", ("BQ_DRIVER_EXPORT_BUCKET_CSV_ESCAPE_SYMBOL",)),
    ("poll_timeout", ("BQ_DRIVER_POLL_TIMEOUT", "BQ_DRIVER_QUERY_TIMEOUT")),
    ("poll_max_interval", ("BQ_DRIVER_POLL_MAX_INTERVAL",)),
    ("usage_log", ("BQ_DRIVER_USAGE_LOG",)),
)


class ConfigLoader:
    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> None:
        self.config_dir = user_config_dir("bq_driver")
        self.config_path = config_path or f"{self.config_dir}/config.yaml"
        self.environ = os.environ if environ is None else environ
        self._config: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        if self._config is not None:
            return self._config
        data = copy.deepcopy(DEFAULT_CONFIG)
        try:
            with open(self.config_path, "r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
            data = self._merge(data, loaded)
        except FileNotFoundError:
            self._ensure_default_written(data)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid config file {self.config_path}: {exc}") from exc
        data = self._apply_env(data)
        self._config = self._validate(data)
        return self._config

    def _ensure_default_written(self, data: Dict[str, Any]) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as handle:
                yaml.safe_dump(data, handle, sort_keys=False)
        except OSError:
            # read-only home directories still get the defaults
            return

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = self._merge(base[key], value)
            else:
                base[key] = value
        return base

    def _apply_env(self, data: Dict[str, Any]) -> Dict[str, Any]:
        driver = data["driver"]
        for key, names in ENV_OVERRIDES:
            for name in names:
                value = self.environ.get(name)
                if value not in (None, ""):
                    driver[key] = value
                    break
        return data

    def _validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        driver = data["driver"]

        def safe_number(key: str, default: float) -> float:
            try:
                value = float(driver[key])
            except (KeyError, TypeError, ValueError):
                return default
            if value <= 0:
                return default
            return value

        driver["poll_timeout"] = safe_number("poll_timeout", 600)
        driver["poll_max_interval"] = safe_number("poll_max_interval", 5)
        driver["read_only"] = _as_bool(driver.get("read_only"), True)
        driver["usage_log"] = _as_bool(driver.get("usage_log"), False)

        bucket_type = (driver.get("export_bucket_type") or "gcp").lower()
        if bucket_type not in SUPPORTED_EXPORT_BUCKET_TYPES:
            raise ConfigurationError(
                f"Unsupported export bucket type {bucket_type!r}; supported: {', '.join(SUPPORTED_EXPORT_BUCKET_TYPES)}."
            )
        driver["export_bucket_type"] = bucket_type
        return data

    def as_json(self) -> str:
        return json.dumps(self.load())


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def decode_credentials(encoded: Union[str, Dict[str, Any], None]) -> Optional[Dict[str, Any]]:
    if not encoded:
        return None
    if isinstance(encoded, dict):
        return encoded
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise ConfigurationError("BQ_DRIVER_CREDENTIALS must be base64 encoded JSON.") from exc


@dataclass(frozen=True)
class DriverOptions:
    project_id: Optional[str] = None
    location: Optional[str] = None
    key_file: Optional[str] = None
    credentials: Optional[Dict[str, Any]] = None
    export_bucket: Optional[str] = None
    export_bucket_csv_escape_symbol: Optional[str] = None
    poll_timeout_ms: int = 600_000
    poll_max_interval_ms: int = 5_000
    read_only: bool = True
    usage_log: bool = False
    scopes: Tuple[str, ...] = field(default=DEFAULT_SCOPES)

    @classmethod
    def from_config(cls, config: Dict[str, Any], resolve_gcloud: bool = True) -> "DriverOptions":
        driver = config["driver"]
        project_id = driver.get("project_id")
        location = driver.get("location")
        if resolve_gcloud and not (project_id and location):
            properties = read_gcloud_properties()
            project_id = project_id or get_default_project(properties)
            location = location or get_default_location(properties)
        return cls(
            project_id=project_id,
            location=location,
            key_file=driver.get("key_file"),
            credentials=decode_credentials(driver.get("credentials")),
            export_bucket=driver.get("export_bucket"),
            export_bucket_csv_escape_symbol=driver.get("export_bucket_csv_escape_symbol"),
            poll_timeout_ms=int(driver["poll_timeout"] * 1000),
            poll_max_interval_ms=int(driver["poll_max_interval"] * 1000),
            read_only=driver["read_only"],
            usage_log=driver["usage_log"],
        )


def get_usage_log_path() -> str:
    state_dir = user_state_dir("bq_driver")
    return f"{state_dir}/usage.jsonl"
