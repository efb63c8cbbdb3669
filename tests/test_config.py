import base64
import json

import pytest
import yaml

from bq_driver.config import ConfigLoader, DriverOptions
from bq_driver.errors import ConfigurationError
from bq_driver.gcloud import get_default_location, get_default_project


def test_missing_file_writes_defaults(tmp_path):
    path = tmp_path / "cfg" / "config.yaml"
    config = ConfigLoader(config_path=str(path), environ={}).load()
    assert path.exists()
    assert config["driver"]["poll_timeout"] == 600
    assert config["driver"]["poll_max_interval"] == 5
    assert config["driver"]["export_bucket"] is None


def test_env_overrides_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"driver": {"poll_timeout": 30, "export_bucket": "from-file"}}))
    environ = {"BQ_DRIVER_POLL_TIMEOUT": "45", "BQ_DRIVER_EXPORT_BUCKET": "from-env"}
    config = ConfigLoader(config_path=str(path), environ=environ).load()
    assert config["driver"]["poll_timeout"] == 45.0
    assert config["driver"]["export_bucket"] == "from-env"


def test_query_timeout_is_poll_timeout_fallback(tmp_path):
    config = ConfigLoader(config_path=str(tmp_path / "c.yaml"), environ={"BQ_DRIVER_QUERY_TIMEOUT": "120"}).load()
    assert config["driver"]["poll_timeout"] == 120.0


def test_invalid_numbers_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"driver": {"poll_timeout": "soon", "poll_max_interval": -1}}))
    config = ConfigLoader(config_path=str(path), environ={}).load()
    assert config["driver"]["poll_timeout"] == 600
    assert config["driver"]["poll_max_interval"] == 5


def test_unsupported_bucket_type(tmp_path):
    loader = ConfigLoader(config_path=str(tmp_path / "c.yaml"), environ={"BQ_DRIVER_EXPORT_BUCKET_TYPE": "s3"})
    with pytest.raises(ConfigurationError):
        loader.load()


def test_driver_options_from_config(tmp_path):
    credentials = {"type": "service_account", "project_id": "proj"}
    environ = {
        "BQ_DRIVER_PROJECT_ID": "proj",
        "BQ_DRIVER_LOCATION": "EU",
        "BQ_DRIVER_CREDENTIALS": base64.b64encode(json.dumps(credentials).encode()).decode(),
        "BQ_DRIVER_POLL_MAX_INTERVAL": "2",
        "BQ_DRIVER_EXPORT_BUCKET_CSV_ESCAPE_SYMBOL": "\\",
    }
    config = ConfigLoader(config_path=str(tmp_path / "c.yaml"), environ=environ).load()
    options = DriverOptions.from_config(config)
    assert options.project_id == "proj"
    assert options.location == "EU"
    assert options.credentials == credentials
    assert options.poll_timeout_ms == 600_000
    assert options.poll_max_interval_ms == 2_000
    assert options.export_bucket_csv_escape_symbol == "\\"
    assert options.read_only is True


def test_bad_credentials_are_a_configuration_error(tmp_path):
    config = ConfigLoader(
        config_path=str(tmp_path / "c.yaml"), environ={"BQ_DRIVER_CREDENTIALS": "not base64 json"}
    ).load()
    with pytest.raises(ConfigurationError):
        DriverOptions.from_config(config, resolve_gcloud=False)


def test_credentials_mapping_in_yaml_is_used_as_is(tmp_path):
    credentials = {"type": "service_account", "project_id": "proj"}
    path = tmp_path / "c.yaml"
    path.write_text(yaml.safe_dump({"driver": {"credentials": credentials}}))
    config = ConfigLoader(config_path=str(path), environ={}).load()
    options = DriverOptions.from_config(config, resolve_gcloud=False)
    assert options.credentials == credentials


def test_non_string_credentials_are_a_configuration_error(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text(yaml.safe_dump({"driver": {"credentials": 12345}}))
    config = ConfigLoader(config_path=str(path), environ={}).load()
    with pytest.raises(ConfigurationError, match="base64 encoded JSON"):
        DriverOptions.from_config(config, resolve_gcloud=False)


def test_gcloud_defaults():
    properties = {
        "core": {"project": "my-project"},
        "bigquery": {"location": "EU"},
    }
    assert get_default_project(properties) == "my-project"
    assert get_default_location(properties) == "EU"
    assert get_default_project({}) is None
    assert get_default_location({"bigquery": {"location": "(unset)"}}) is None


def test_gcloud_compute_region_is_not_a_bigquery_location():
    properties = {"compute": {"region": "asia-northeast1"}, "run": {"region": "us-central1"}}
    assert get_default_location(properties) is None
