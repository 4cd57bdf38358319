"""Unit tests for layered configuration loading."""

from pathlib import Path

import yaml

from agriadvisor.config.config_loader import DEFAULT_CONFIG, load_config


def test_defaults_when_file_missing(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("AGRI_SERVER_URL", raising=False)

    config = load_config(tmp_path / "missing.yaml")

    assert config["client"]["max_concurrent_deliveries"] == 10
    assert config["client"]["request_timeout_seconds"] == 10
    assert config["outbreaks"]["cluster_radius_degrees"] == 0.09
    assert config["sync"]["clear_windows"] == {"7d": 7, "30d": 30, "90d": 90}


def test_yaml_is_deep_merged(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config_file = tmp_path / "agriadvisor.yaml"
    config_file.write_text(yaml.safe_dump({"client": {"failure_threshold": 3}}))

    config = load_config(config_file)

    assert config["client"]["failure_threshold"] == 3
    assert config["client"]["retention_days"] == 7


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch):
    config_file = tmp_path / "agriadvisor.yaml"
    config_file.write_text(yaml.safe_dump({"database": {"url": "sqlite+aiosqlite:///yaml.db"}}))
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///env.db")
    monkeypatch.setenv("AGRI_ALERT_WEBHOOK_URL", "https://hooks.example.com/alerts")

    config = load_config(config_file)

    assert config["database"]["url"] == "sqlite+aiosqlite:///env.db"
    assert config["notifications"]["channels"]["webhook"]["enabled"] is True


def test_defaults_are_not_mutated(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("AGRI_SERVER_URL", "http://farm-server:9000")

    config = load_config(tmp_path / "missing.yaml")

    assert config["client"]["base_url"] == "http://farm-server:9000"
    assert DEFAULT_CONFIG["client"]["base_url"] == "http://localhost:8080"
