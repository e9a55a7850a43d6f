from __future__ import annotations

import json

import pytest

from upose.config import (
    PoseSettings,
    load_config_from_file,
    load_settings,
    resolve_settings,
    validate_settings,
)


def test_defaults_match_tracking_constants():
    settings = load_settings()
    assert settings.tracker.min_candidates == 3
    assert settings.tracker.sentinel_divisor == 64.0
    assert settings.maps.skin_red == pytest.approx(0.6)
    assert settings.maps.skin_green == pytest.approx(-0.3)
    assert settings.extractor.blur_size == 9
    assert settings.driver.mode == "local-search"
    assert settings.driver.random_seed is None
    assert settings == PoseSettings()


def test_env_overrides_are_coerced(monkeypatch):
    monkeypatch.setenv("UPOSE_TRACKER_MIN_CANDIDATES", "4")
    monkeypatch.setenv("UPOSE_TRACKER_REFINE_HANDS", "yes")
    monkeypatch.setenv("UPOSE_OPTIMIZER_STEP_RADIUS", "7.5")
    monkeypatch.setenv("UPOSE_DRIVER_RANDOM_SEED", "11")
    monkeypatch.setenv("UPOSE_MAPS_SKIN_MODE", "probability")

    settings = load_settings()
    assert settings.tracker.min_candidates == 4
    assert settings.tracker.refine_hands is True
    assert settings.optimizer.step_radius == 7.5
    assert settings.driver.random_seed == 11
    assert settings.maps.skin_mode == "probability"


def test_invalid_env_value_keeps_default(monkeypatch):
    monkeypatch.setenv("UPOSE_OPTIMIZER_ITERATIONS", "lots")
    assert load_settings().optimizer.iterations == 200


def test_toml_file_with_upose_table(tmp_path, monkeypatch):
    path = tmp_path / "upose.toml"
    path.write_text(
        "[upose.tracker]\nmin_candidates = 5\nrefine_hands = true\n\n[upose.optimizer]\niterations = 50\n",
        encoding="utf-8",
    )
    settings = load_config_from_file(path)
    assert settings.tracker.min_candidates == 5
    assert settings.tracker.refine_hands is True
    assert settings.optimizer.iterations == 50

    monkeypatch.setenv("UPOSE_OPTIMIZER_ITERATIONS", "75")
    assert load_config_from_file(path).optimizer.iterations == 75


def test_json_file_at_root_level(tmp_path):
    path = tmp_path / "upose.json"
    path.write_text(json.dumps({"driver": {"mode": "heatmap"}, "heatmap": {"sigma_spatial": 12}}), encoding="utf-8")
    settings = load_config_from_file(path)
    assert settings.driver.mode == "heatmap"
    assert settings.heatmap.sigma_spatial == 12.0


def test_config_file_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config_from_file(tmp_path / "missing.toml")
    with pytest.raises(ValueError):
        load_config_from_file(tmp_path)
    bad = tmp_path / "upose.yaml"
    bad.write_text("tracker: {}", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config_from_file(bad)


def test_resolve_settings_uses_env_config(tmp_path, monkeypatch):
    path = tmp_path / "upose.json"
    path.write_text(json.dumps({"extractor": {"min_extent": 7}}), encoding="utf-8")
    monkeypatch.setenv("UPOSE_CONFIG", str(path))
    assert resolve_settings().extractor.min_extent == 7


def test_validate_settings_flags_bad_values(monkeypatch):
    monkeypatch.setenv("UPOSE_DRIVER_MODE", "simplex")
    monkeypatch.setenv("UPOSE_TRACKER_MAX_CANDIDATES", "2")
    with pytest.warns(RuntimeWarning):
        problems = validate_settings(load_settings())
    assert any("driver.mode" in problem for problem in problems)
    assert any("max_candidates" in problem for problem in problems)

    assert validate_settings(PoseSettings()) == []
