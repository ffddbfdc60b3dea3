# tests/test_config.py
import math

import pytest

from circuitsim_core import SimulationSettings, load_settings, parse_magnitude
from circuitsim_core.simulation import ConfigParsingError


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings()
        assert settings == SimulationSettings()
        assert settings.dt == 0.01
        assert settings.newton_max_iterations == 40
        assert settings.newton_voltage_tolerance == 1e-6
        assert not settings.enable_adaptive_time_step

    def test_mapping_overrides_and_coercion(self):
        settings = load_settings({"dt": 1, "ac_max_substeps": 32, "log_level": "debug"})
        assert settings.dt == 1.0 and isinstance(settings.dt, float)
        assert settings.ac_max_substeps == 32
        assert settings.log_level == "DEBUG"
        assert settings.to_dict()["ac_max_substeps"] == 32

    def test_yaml_file_with_simulation_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "simulation:\n"
            "  dt: 0.001\n"
            "  enable_adaptive_time_step: true\n"
            "  min_adaptive_dt: 1.0e-6\n",
            encoding="utf-8",
        )
        settings = load_settings(path)
        assert settings.dt == 0.001
        assert settings.enable_adaptive_time_step
        assert settings.min_adaptive_dt == 1e-6

    def test_empty_yaml_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(str(path)) == SimulationSettings()

    @pytest.mark.parametrize("raw", [
        {"dt": -0.01},
        {"dt": math.inf},
        {"gmin": 0},
        {"newton_max_iterations": 0},
        {"enable_adaptive_time_step": "yes"},
        {"log_level": "LOUD"},
        {"unknown_key": 1},
    ])
    def test_invalid_values_are_rejected(self, raw):
        with pytest.raises(ConfigParsingError):
            load_settings(raw)

    def test_adaptive_bounds_must_be_ordered(self):
        with pytest.raises(ConfigParsingError, match="must not exceed"):
            load_settings({"min_adaptive_dt": 0.1, "max_adaptive_dt": 0.01})

    def test_file_errors(self, tmp_path):
        with pytest.raises(ConfigParsingError, match="not found"):
            load_settings(tmp_path / "missing.yaml")
        broken = tmp_path / "broken.yaml"
        broken.write_text("dt: [0.1", encoding="utf-8")
        with pytest.raises(ConfigParsingError, match="Invalid YAML"):
            load_settings(broken)
        listed = tmp_path / "list.yaml"
        listed.write_text("- dt\n", encoding="utf-8")
        with pytest.raises(ConfigParsingError) as exc_info:
            load_settings(listed)
        assert exc_info.value.source_file == listed.resolve()
        assert "Simulation Settings Error" in exc_info.value.get_diagnostic_report()

    def test_config_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            load_settings({"dt": "fast"})


class TestParseMagnitude:

    @pytest.mark.parametrize("raw, unit, expected", [
        (5, "ohm", 5.0),
        (2.5, None, 2.5),
        ("1e3", "ohm", 1000.0),
        ("4.7 kohm", "ohm", 4700.0),
        ("10 mV", "volt", 0.01),
        ("50 Hz", "hertz", 50.0),
        ("220 uF", "farad", 220e-6),
    ])
    def test_numbers_and_quantities(self, raw, unit, expected):
        assert parse_magnitude(raw, unit) == pytest.approx(expected)

    def test_infinity_is_allowed(self):
        assert parse_magnitude("inf", "ohm") == math.inf

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "abc",
        "5 kg",
        math.nan,
        True,
        None,
        [1.0],
    ])
    def test_unusable_values_raise(self, raw):
        with pytest.raises(ValueError):
            parse_magnitude(raw, "ohm")
