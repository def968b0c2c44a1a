import pytest

from stuckup_dashboard.config import ColumnMap, ConfigError, DashboardConfig, Settings


def test_dashboard_config_defaults(monkeypatch):
    for name in ("DASHBOARD_STUCK_STATUSES_JSON", "DASHBOARD_BUCKET_LABELS_JSON",
                 "DASHBOARD_COLUMNS_JSON", "DASHBOARD_TREND_DAYS"):
        monkeypatch.delenv(name, raising=False)
    config = DashboardConfig.from_env()
    assert config == DashboardConfig()
    assert config.columns.width == 15


def test_dashboard_config_overrides(monkeypatch):
    monkeypatch.setenv("DASHBOARD_STUCK_STATUSES_JSON", '["Lost", "Disposed"]')
    monkeypatch.setenv("DASHBOARD_BUCKET_LABELS_JSON", '["old", "new"]')
    monkeypatch.setenv("DASHBOARD_COLUMNS_JSON", '{"date": 1, "hub": 2, "bucket": 3, "region": 4, "status": 5}')
    monkeypatch.setenv("DASHBOARD_TREND_DAYS", "14")
    config = DashboardConfig.from_env()
    assert config.stuck_statuses == ("Lost", "Disposed")
    assert config.bucket_labels == ("old", "new")
    assert config.columns == ColumnMap(1, 2, 3, 4, 5)
    assert config.trend_days == 14


def test_invalid_json_is_a_config_error(monkeypatch):
    monkeypatch.setenv("DASHBOARD_STUCK_STATUSES_JSON", "[oops")
    with pytest.raises(ConfigError):
        DashboardConfig.from_env()


@pytest.mark.parametrize("kwargs", [{"trend_days": 0}, {"top_hubs_size": -1}, {"status_volume_size": "7"}])
def test_sizes_must_be_positive(kwargs):
    with pytest.raises(ConfigError):
        DashboardConfig(**kwargs)


def test_column_map_rejects_booleans():
    with pytest.raises(ConfigError):
        ColumnMap(date=True)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("PIVOT_SPREADSHEET_ID", "pivot")
    monkeypatch.setenv("PIVOT_RANGE", "A1:J20")
    monkeypatch.setenv("POLL_JOBS_JSON", '[{"jobName": "a"}]')
    monkeypatch.setenv("POLL_INTERVAL_MS", "not a number")
    monkeypatch.delenv("PIVOT_AGEING_RANGE", raising=False)

    settings = Settings.from_env()
    assert settings.port == 8080
    assert settings.pivot_spreadsheet_id == "pivot"
    assert settings.pivot_ranges["regional-validation"] == "A1:J20"
    assert settings.pivot_ranges["ageing-bucket"] is None
    assert settings.poll_jobs == [{"jobName": "a"}]
    assert settings.poll_interval_ms == 60000


def test_settings_carry_dashboard_config(monkeypatch):
    monkeypatch.setenv("DASHBOARD_TREND_DAYS", "3")
    assert Settings.from_env().dashboard.trend_days == 3


def test_malformed_poll_jobs_disable_polling(monkeypatch):
    monkeypatch.setenv("POLL_JOBS_JSON", "[{not json")
    settings = Settings.from_env()
    assert settings.poll_jobs == []
    assert settings.poll_jobs_error.startswith("Invalid JSON in POLL_JOBS_JSON")


def test_named_columns_wait_for_the_header_row(monkeypatch):
    monkeypatch.setenv("DASHBOARD_COLUMNS_JSON", '{"date": "Date", "hub": "Hub", "status": 14}')
    config = DashboardConfig.from_env()
    assert config.column_names == {"date": "Date", "hub": "Hub", "status": 14}
    assert config.columns == ColumnMap()


def test_named_columns_reject_unknown_roles(monkeypatch):
    monkeypatch.setenv("DASHBOARD_COLUMNS_JSON", '{"day": "Date"}')
    with pytest.raises(ConfigError):
        DashboardConfig.from_env()
