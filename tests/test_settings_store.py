import json

from thermostat.services.settings_store import SettingsStore


def test_defaults_when_file_missing(tmp_path):
    store = SettingsStore(str(tmp_path / "settings.json"), default_target=21.0, default_hysteresis=1.0)

    assert store.load_initial_target() == (21.0, 1.0)


def test_persisted_values_round_trip(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    store = SettingsStore(str(path))

    store.persist_target(24.5)
    store.persist_hysteresis(2.0)

    assert SettingsStore(str(path)).load_initial_target() == (24.5, 2.0)
    record = json.loads(path.read_text(encoding="utf-8"))["targetTemperature"]
    assert record["value"] == 24.5
    assert "updatedAt" in record
    assert not (tmp_path / "nested" / "settings.json.lock").exists()


def test_invalid_fields_fall_back_independently(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"targetTemperature": {"value": 45, "hysteresis": 0.7}}), encoding="utf-8")

    assert SettingsStore(str(path)).load_initial_target() == (22.0, 0.7)

    path.write_text(json.dumps({"targetTemperature": {"value": 19, "hysteresis": True}}), encoding="utf-8")

    assert SettingsStore(str(path)).load_initial_target() == (19.0, 1.5)


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(str(path)).load_initial_target() == (22.0, 1.5)


def test_persist_keeps_unrelated_keys(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"other": {"keep": True}}), encoding="utf-8")

    SettingsStore(str(path)).persist_target(20.0)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["other"] == {"keep": True}
    assert data["targetTemperature"]["hysteresis"] == 1.5
