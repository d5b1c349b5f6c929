import json

import pytest

from break_reader.errors import SettingsError
from break_reader.settings import (
    DEFAULT_SETTINGS,
    Settings,
    SettingsStore,
    settings_from_dict,
    validate_settings,
)


@pytest.fixture
def settings_path(tmp_path):
    return tmp_path / "BreakReader" / "settings.json"


def test_defaults():
    assert DEFAULT_SETTINGS == Settings(interval_minutes=30, break_seconds=120, start_with_os=False)
    assert DEFAULT_SETTINGS.speech_enabled is True


def test_missing_file_gives_defaults(settings_path, logger):
    assert SettingsStore(str(settings_path), logger).load() == DEFAULT_SETTINGS


def test_corrupt_file_gives_defaults(tmp_path, logger):
    path = tmp_path / "settings.json"
    path.write_text("{\"intervalMinutes\": ", encoding="utf-8")

    assert SettingsStore(str(path), logger).load() == DEFAULT_SETTINGS


def test_per_field_fallback(tmp_path, logger):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"intervalMinutes": 45, "breakSeconds": -3, "startWithOS": "yes", "extra": 1}),
        encoding="utf-8",
    )

    settings = SettingsStore(str(path), logger).load()

    assert settings.interval_minutes == 45
    assert settings.break_seconds == 120
    assert settings.start_with_os is False


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"intervalMinutes": 20.0}, 20),
        ({"intervalMinutes": 20.5}, 30),
        ({"intervalMinutes": True}, 30),
        ({"intervalMinutes": "20"}, 30),
        ({}, 30),
    ],
)
def test_interval_coercion(data, expected):
    assert settings_from_dict(data).interval_minutes == expected


def test_non_object_json_gives_defaults():
    assert settings_from_dict([1, 2, 3]) == DEFAULT_SETTINGS


@pytest.mark.parametrize(
    "changes",
    [{"interval_minutes": 0}, {"interval_minutes": -5}, {"break_seconds": 0}, {"break_seconds": 1.5}, {"break_seconds": True}],
)
def test_validation_rejects(changes):
    with pytest.raises(SettingsError):
        validate_settings(DEFAULT_SETTINGS.with_changes(**changes))


def test_save_round_trip(settings_path, logger):
    store = SettingsStore(str(settings_path), logger)
    saved = Settings(interval_minutes=25, break_seconds=60, start_with_os=True, speech_enabled=False)

    store.save(saved)

    assert store.load() == saved
    assert json.loads(settings_path.read_text(encoding="utf-8")) == {
        "intervalMinutes": 25,
        "breakSeconds": 60,
        "startWithOS": True,
        "speechEnabled": False,
    }


def test_save_rejects_invalid_without_writing(settings_path, logger):
    store = SettingsStore(str(settings_path), logger)

    with pytest.raises(SettingsError):
        store.save(DEFAULT_SETTINGS.with_changes(interval_minutes=0))

    assert not settings_path.exists()
