"""Test loading configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from registry_reaper.config import DEFAULT_REGISTRY_URL, Config


def test_environment_defaults() -> None:
    cfg = Config.from_environment({}).registry
    assert cfg.base_url == DEFAULT_REGISTRY_URL
    assert cfg.dry_run is True
    assert cfg.delete_untagged is False
    assert cfg.debug is False
    assert cfg.retention_count == 5
    assert cfg.repositories is None
    assert cfg.auth is None


def test_environment() -> None:
    cfg = Config.from_environment(
        {
            "REGISTRY_URL": "https://registry.example.com/",
            "REGISTRY_USER": "reaper",
            "REGISTRY_PASS": "hunter2",
            "DRY_RUN": "False",
            "REPOSITORIES": "library/app, tools/builder,, ",
            "DELETE_UNTAGGED": "true",
            "RETENTION_COUNT": " 3 ",
            "REAPER_DEBUG": "TRUE",
        }
    ).registry
    assert cfg.base_url == "https://registry.example.com"
    assert cfg.dry_run is False
    assert cfg.delete_untagged is True
    assert cfg.debug is True
    assert cfg.retention_count == 3
    assert cfg.repositories == ["library/app", "tools/builder"]
    assert cfg.auth is not None
    assert cfg.auth.complete
    assert cfg.auth.username == "reaper"
    assert cfg.auth.password is not None
    assert cfg.auth.password.get_secret_value() == "hunter2"


@pytest.mark.parametrize("value", ["", "true", "no", "0", "yes"])
def test_dry_run_unless_false(value: str) -> None:
    cfg = Config.from_environment({"DRY_RUN": value}).registry
    assert cfg.dry_run is True


def test_blank_repositories_means_all() -> None:
    cfg = Config.from_environment({"REPOSITORIES": " , ,"}).registry
    assert cfg.repositories is None


def test_partial_auth() -> None:
    cfg = Config.from_environment({"REGISTRY_USER": "reaper"}).registry
    assert cfg.auth is not None
    assert not cfg.auth.complete


@pytest.mark.parametrize("count", ["0", "-1", "many"])
def test_bad_retention_count(count: str) -> None:
    with pytest.raises(ValidationError):
        Config.from_environment({"RETENTION_COUNT": count})


def test_from_file(tmp_path: Path) -> None:
    config_file = tmp_path / "reaper.yaml"
    config_file.write_text(
        "registry:\n"
        "  url: https://registry.example.com\n"
        "  dryRun: false\n"
        "  retentionCount: 3\n"
        "  repositories: [library/app]\n"
        "  auth:\n"
        "    username: reaper\n"
        "    password: hunter2\n"
    )
    cfg = Config.from_file(config_file).registry
    assert cfg.base_url == "https://registry.example.com"
    assert cfg.dry_run is False
    assert cfg.retention_count == 3
    assert cfg.repositories == ["library/app"]
    assert cfg.auth is not None
    assert cfg.auth.complete
    assert "hunter2" not in repr(cfg)


def test_from_empty_file(tmp_path: Path) -> None:
    config_file = tmp_path / "reaper.yaml"
    config_file.write_text("")
    cfg = Config.from_file(config_file).registry
    assert cfg.base_url == DEFAULT_REGISTRY_URL
    assert cfg.dry_run is True
