import datetime
import decimal

from bq_driver.app_model import ColumnType
from bq_driver.bq.jobs import JobPoller
from bq_driver.bq.query import QueryExecutor, normalize_row, normalize_value
from bq_driver.bq.schema import SchemaProber
from fakes import FakeClient, FakeClock, FakeField, FakeJob


def _stack(client):
    clock = FakeClock()
    poller = JobPoller(client, 60_000, 5_000, sleep=clock.sleep, clock=clock)
    executor = QueryExecutor(poller)
    return executor, SchemaProber(client, executor)


def _probe_responder(probe_rows, probe_schema, type_rows):
    def respond(sql, config):
        if sql.startswith("WITH ORIGIN"):
            return FakeJob("types", rows=type_rows, schema=[FakeField(f.name, "STRING") for f in probe_schema])
        return FakeJob("probe", rows=probe_rows, schema=probe_schema)

    return respond


def test_boxed_scalars_are_unwrapped():
    assert normalize_value(decimal.Decimal("12345678901234567890.5")) == "12345678901234567890.5"
    assert normalize_value(decimal.Decimal("1E+3")) == "1000"
    assert normalize_value(datetime.date(2024, 1, 2)) == "2024-01-02"
    assert normalize_value(datetime.datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
    assert normalize_value(7) == 7
    assert normalize_value(None) is None
    assert normalize_row({"a": decimal.Decimal("2"), "b": "x"}) == {"a": "2", "b": "x"}


def test_execute_normalizes_rows():
    job = FakeJob(rows=[{"id": 1, "amount": decimal.Decimal("9.99")}])
    executor, _ = _stack(FakeClient(responder=lambda sql, config: job))
    assert executor.execute("SELECT id, amount FROM t") == [{"id": 1, "amount": "9.99"}]


def test_load_into_table_skips_result_fetch():
    job = FakeJob(states=["RUNNING", "DONE"])
    client = FakeClient(responder=lambda sql, config: job)
    executor, _ = _stack(client)
    assert executor.load_into_table("pre_aggs.daily", "SELECT 1", []) is True
    assert job.result_calls == 0
    assert client.queries[0][1].destination.dataset_id == "pre_aggs"


def test_column_types_for_query_maps_in_probe_order():
    schema = [FakeField("a", "INTEGER"), FakeField("b", "STRING")]
    client = FakeClient(
        responder=_probe_responder([{"a": 1, "b": "x"}], schema, [{"a": "INT64", "b": "STRING"}])
    )
    _, prober = _stack(client)
    types = prober.column_types_for_query("SELECT 1 AS a, 'x' AS b")
    assert types == [ColumnType("a", "bigint"), ColumnType("b", "text")]
    probe_sql, _ = client.queries[0]
    types_sql, _ = client.queries[1]
    assert probe_sql == "SELECT 1 AS a, 'x' AS b LIMIT 1"
    assert types_sql.startswith("WITH ORIGIN AS (SELECT 1 AS a, 'x' AS b LIMIT 1)")
    assert "bqutil.fn.typeof(`a`) AS `a`" in types_sql


def test_column_types_for_empty_probe_use_result_schema():
    schema = [FakeField("id", "INTEGER"), FakeField("created", "TIMESTAMP"), FakeField("ok", "BOOLEAN")]
    client = FakeClient(responder=_probe_responder([], schema, []))
    _, prober = _stack(client)
    types = prober.column_types_for_query("SELECT id, created, ok FROM t WHERE FALSE")
    assert types == [
        ColumnType("id", "bigint"),
        ColumnType("created", "timestamp"),
        ColumnType("ok", "boolean"),
    ]


def test_column_types_for_table_reads_metadata_without_query():
    client = FakeClient(tables={"ds.events": [FakeField("id", "INTEGER"), FakeField("day", "DATE")]})
    _, prober = _stack(client)
    assert prober.column_types_for_table("ds.events") == [ColumnType("id", "bigint"), ColumnType("day", "date")]
    assert client.queries == []
