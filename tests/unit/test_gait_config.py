import pytest

from gaitauth.gait_config import GaitConfig, TimerConfig, FilterConfig, load_gait_config


def test_missing_file_yields_defaults(tmp_path):
    cfg = load_gait_config(tmp_path / "absent.toml")

    assert cfg == GaitConfig()
    assert cfg.cadence.min_steps == 5
    assert cfg.cadence.confirm_window_ns == 7_000_000_000
    assert cfg.cadence.timeout_ns == 20_000_000_000
    assert cfg.collection.window_rows == 200
    assert cfg.filter.alpha == pytest.approx(0.854)
    assert cfg.inference.cooldown_sec == 60.0


def test_partial_file_overrides_only_given_keys(tmp_path):
    path = tmp_path / "gait_config.toml"
    path.write_text(
        "[cadence]\nmin_steps = 3\n\n[filter]\norder = \"insertion\"\n\n[timer]\ntick_sec = 0.5\n",
        encoding="utf-8",
    )

    cfg = load_gait_config(path)

    assert cfg.cadence.min_steps == 3
    assert cfg.cadence.timeout_sec == 20.0
    assert cfg.filter.order == "insertion"
    assert cfg.timer.tick_sec == 0.5
    assert cfg.timer.idle_sec == 8


def test_shipped_config_matches_defaults():
    assert load_gait_config() == GaitConfig()


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError):
        FilterConfig(alpha=0.0)
    with pytest.raises(ValueError):
        FilterConfig(order="random")
    with pytest.raises(ValueError):
        TimerConfig(idle_sec=0)
