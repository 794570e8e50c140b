# tests/test_config.py
from dataclasses import replace

import pytest

from hrtempo.config import DEFAULTS, load_settings, merge_settings, config_from_settings, validate_config
from hrtempo.control.presets import HR_ZONE_PRESETS, find_zone_preset, create_default_config
from hrtempo.control.types import AlgorithmConfig


def test_defaults_without_yaml(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml")
    assert settings == DEFAULTS
    cfg = config_from_settings(settings)
    assert cfg == create_default_config()
    assert cfg.target_zone.name == "Zone 2 (Easy)"


def test_yaml_overrides_merge_deep(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text(
        "algorithm:\n  responsiveness: 0.8\n"
        "zone:\n  min_bpm: 120\n  max_bpm: 135\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings["algorithm"]["responsiveness"] == 0.8
    assert settings["algorithm"]["cooldown_seconds"] == 5
    cfg = config_from_settings(settings)
    assert (cfg.target_zone.min_bpm, cfg.target_zone.max_bpm) == (120, 135)
    assert cfg.target_zone.name == "Custom 120-135"
    assert DEFAULTS["algorithm"]["responsiveness"] == 0.5


def test_broken_yaml_falls_back_with_warning(tmp_path, capsys):
    path = tmp_path / "broken.yaml"
    path.write_text("algorithm: [unclosed\n", encoding="utf-8")
    assert load_settings(path) == DEFAULTS
    assert "[WARN]" in capsys.readouterr().out


def test_bundled_defaults_file_parses():
    from pathlib import Path
    path = Path(__file__).resolve().parents[1] / "configs" / "defaults.yaml"
    cfg = config_from_settings(load_settings(path))
    assert cfg.strategy_name == "linear"


def test_merge_settings_does_not_alias():
    base = {"a": {"b": 1}}
    out = merge_settings(base, {"a": {"c": 2}})
    out["a"]["b"] = 99
    assert base == {"a": {"b": 1}}


def test_zone_presets():
    assert [z.name for z in HR_ZONE_PRESETS] == ["Zone 2 (Easy)", "Zone 3 (Tempo)", "Zone 4 (Threshold)"]
    assert find_zone_preset("zone 3").min_bpm == 150
    assert find_zone_preset("Zone 4 (Threshold)").max_bpm == 185
    with pytest.raises(ValueError):
        find_zone_preset("zone 9")


@pytest.mark.parametrize("change", [
    dict(min_music_bpm=200, max_music_bpm=100),
    dict(responsiveness=1.5),
    dict(smoothing_window=0),
    dict(cooldown_seconds=-1),
    dict(dwell_time_ms=-5),
    dict(strategy_name="pid"),
])
def test_validate_config_rejects(change):
    with pytest.raises(ValueError):
        validate_config(replace(create_default_config(), **change))


def test_validate_config_rejects_inverted_zone():
    cfg = create_default_config()
    with pytest.raises(ValueError, match="min_bpm"):
        validate_config(replace(cfg, target_zone=replace(cfg.target_zone, min_bpm=160, max_bpm=150)))


def test_config_dict_round_trip():
    cfg = create_default_config(find_zone_preset("zone 3"))
    assert AlgorithmConfig.from_dict(cfg.to_dict()) == cfg
