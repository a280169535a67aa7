"""Unit tests for configuration management."""

from datetime import timedelta
from pathlib import Path

import pytest

from blockdrop.config import (
    BlockdropConfig,
    ConfigError,
    ConfigManager,
    ValidatorCommand,
    flatten_for_env,
    parse_env,
    parse_retention,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".blockdrop" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "blockdrop configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, BlockdropConfig)
    assert config.backup.enabled is True
    assert config.processing.concurrency == 4


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"backup": {"retention": "14d"}, "processing": {"concurrency": 2}})

    env = {"BLOCKDROP__PROCESSING__CONCURRENCY": "6", "BLOCKDROP__GIT__AUTO_COMMIT": "true"}
    cli = {"processing.concurrency": 8}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.backup.retention == "14d"
    assert config.git.auto_commit is True
    # CLI overrides take precedence over environment
    assert config.processing.concurrency == 8


def test_environment_ignored_when_disabled(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    manager = ConfigManager(env={"BLOCKDROP__BACKUP__ENABLED": "false"})

    assert manager.load().backup.enabled is False
    assert manager.load(include_env=False).backup.enabled is True


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=BlockdropConfig(),
            file_overrides={"backup": {"enabeld": False}},
        )


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(BlockdropConfig())

    assert flat["BLOCKDROP__BACKUP__DIRECTORY"] == ".blockdrop-backup"
    assert flat["BLOCKDROP__PROCESSING__CONCURRENCY"] == "4"
    assert flat["BLOCKDROP__LOGGING__FILE"] == "null"

    restored = resolve_with_precedence(defaults=BlockdropConfig(), env_overrides=parse_env(flat))
    assert restored == BlockdropConfig()


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=BlockdropConfig(),
            file_overrides={"processing": {"concurrency": "not-an-int"}},
        )


def test_validators_load_from_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save(
        {"validation": {"validators": [{"extension": ".go", "command": "gofmt", "args": ["-l"]}]}}
    )

    config = manager.load(include_env=False)

    assert config.validation.validators == [
        ValidatorCommand(extension="go", command="gofmt", args=["-l"])
    ]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("7d", timedelta(days=7)),
        ("12h", timedelta(hours=12)),
        (" 30m ", timedelta(minutes=30)),
        ("2w", timedelta(weeks=2)),
        ("45s", timedelta(seconds=45)),
    ],
)
def test_parse_retention(value: str, expected: timedelta) -> None:
    assert parse_retention(value) == expected


@pytest.mark.parametrize("value", ["", "7", "d7", "7 days", "-1d"])
def test_parse_retention_rejects_malformed(value: str) -> None:
    with pytest.raises(ValueError):
        parse_retention(value)


def test_invalid_retention_fails_config_validation() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=BlockdropConfig(), file_overrides={"backup": {"retention": "forever"}}
        )
