from __future__ import annotations

import datetime
import decimal
from typing import Any, List, Optional, Sequence

from google.cloud import bigquery, storage
from google.oauth2 import service_account

from ..config import DriverOptions


def _credentials(options: DriverOptions) -> Optional[service_account.Credentials]:
    if options.credentials:
        return service_account.Credentials.from_service_account_info(
            options.credentials, scopes=list(options.scopes)
        )
    if options.key_file:
        return service_account.Credentials.from_service_account_file(
            options.key_file, scopes=list(options.scopes)
        )
    return None


def get_client(options: DriverOptions) -> bigquery.Client:
    return bigquery.Client(
        project=options.project_id,
        credentials=_credentials(options),
        location=options.location,
    )


def get_bucket(options: DriverOptions) -> Optional[storage.Bucket]:
    if not options.export_bucket:
        return None
    client = storage.Client(project=options.project_id, credentials=_credentials(options))
    return client.bucket(options.export_bucket)


def infer_parameter_type(value: Any) -> str:
    if value is None:
        return "STRING"
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, decimal.Decimal):
        return "NUMERIC"
    if isinstance(value, datetime.datetime):
        return "DATETIME" if value.tzinfo is None else "TIMESTAMP"
    if isinstance(value, datetime.date):
        return "DATE"
    if isinstance(value, datetime.time):
        return "TIME"
    if isinstance(value, (bytes, bytearray)):
        return "BYTES"
    return "STRING"


def build_query_parameters(params: Sequence[Any]) -> List[bigquery.ScalarQueryParameter]:
    # name=None makes the parameter positional ("?" placeholders)
    return [bigquery.ScalarQueryParameter(None, infer_parameter_type(value), value) for value in params]


def table_reference(client: bigquery.Client, table: str) -> bigquery.TableReference:
    *project, dataset, name = table.split(".")
    return bigquery.DatasetReference(project[0] if project else client.project, dataset).table(name)


def build_job_config(
    params: Sequence[Any] = (),
    destination: Optional[bigquery.TableReference] = None,
    default_dataset: Optional[str] = None,
) -> bigquery.QueryJobConfig:
    config = bigquery.QueryJobConfig()
    config.use_legacy_sql = False
    if params:
        config.query_parameters = build_query_parameters(params)
    if destination is not None:
        config.destination = destination
        config.create_disposition = bigquery.CreateDisposition.CREATE_IF_NEEDED
    if default_dataset:
        config.default_dataset = default_dataset
    return config
