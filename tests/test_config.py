"""Tests for configuration loading."""

import pytest
import yaml

from gm_sync.config import AppConfig, load_config


def test_load_config_from_yaml(tmp_path):
    config_data = {
        "directory": {"group_id": "grp-1", "api_token_env": "GM_SYNC_TEST_TOKEN"},
        "transport": {"max_retries": 3, "burst_size": 5},
        "sync": {"auto_provision": True, "concurrency": 4},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config_data))

    cfg = load_config(path)
    assert cfg.directory.group_id == "grp-1"
    assert cfg.transport.max_retries == 3
    assert cfg.transport.burst_size == 5
    assert cfg.sync.auto_provision is True
    assert cfg.sync.concurrency == 4
    assert cfg.sync.dry_run is False


def test_load_config_defaults():
    cfg = AppConfig()
    assert cfg.directory.api_url == "https://api.snyk.io/v1"
    assert cfg.directory.api_token_env == "SNYK_TOKEN"
    assert cfg.transport.max_retries == 5
    assert cfg.sync.concurrency == 10
    assert cfg.sync.add_new and cfg.sync.delete_missing
    assert cfg.metrics.textfile_path is None


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()


def test_token_is_read_from_environment(monkeypatch):
    monkeypatch.setenv("GM_SYNC_TEST_TOKEN", "s3cret")
    cfg = AppConfig.model_validate({"directory": {"api_token_env": "GM_SYNC_TEST_TOKEN"}})
    assert cfg.directory.api_token == "s3cret"


def test_invalid_concurrency_is_rejected():
    with pytest.raises(Exception):
        AppConfig.model_validate({"sync": {"concurrency": 0}})


def test_load_config_file_not_found():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/path.yaml")
