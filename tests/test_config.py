"""Tests for JSON configuration and the command-line entry point.

Validates:
- Defaults when the file is missing, deep merge of partial files
- Persistence through ConfigLoader.set
- SimulationParameters construction, overrides and error reporting
- app.main runs a short configured simulation end to end
"""

import json

import pytest

import app
from config import DEFAULTS, ConfigLoader
from simulation import ConfigurationError, SimulationParameters


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestConfigLoader:
    """Tests for loading and saving settings."""

    def test_missing_file_uses_defaults(self, tmp_path):
        loader = ConfigLoader(tmp_path / "absent.json")
        assert loader["sub_steps"] == DEFAULTS["sub_steps"]
        assert loader["simulation"]["N"] == 200

    def test_partial_file_merged(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"N": 64}, "sub_steps": 2})
        loader = ConfigLoader(path)
        assert loader["simulation"]["N"] == 64
        assert loader["simulation"]["L"] == 15.0
        assert loader["sub_steps"] == 2
        assert loader["chart_every"] == DEFAULTS["chart_every"]

    def test_defaults_not_shared(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"N": 8}})
        ConfigLoader(path)
        assert DEFAULTS["simulation"]["N"] == 200

    def test_set_persists(self, tmp_path):
        path = tmp_path / "config.json"
        loader = ConfigLoader(path)
        loader.set("seed", 17)
        assert ConfigLoader(path)["seed"] == 17

    def test_get_and_contains(self, tmp_path):
        loader = ConfigLoader(tmp_path / "absent.json")
        assert "simulation" in loader
        assert loader.get("missing", 3) == 3

    def test_non_object_rejected(self, tmp_path):
        path = _write(tmp_path / "config.json", [1, 2, 3])
        with pytest.raises(ConfigurationError):
            ConfigLoader(path)

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            ConfigLoader(path)

    def test_shipped_config_loads(self):
        params = ConfigLoader().simulation_parameters()
        assert params == SimulationParameters()


class TestSimulationParameters:
    """Tests for building parameters from configuration."""

    def test_from_file(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"N": 27, "L": 9.0}})
        params = ConfigLoader(path).simulation_parameters()
        assert isinstance(params, SimulationParameters)
        assert params.N == 27 and params.L == 9.0

    def test_overrides(self, tmp_path):
        params = ConfigLoader(tmp_path / "absent.json").simulation_parameters(nu=0.0, N=8)
        assert params.nu == 0.0 and params.N == 8

    def test_unknown_key(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"temperature": 300}})
        with pytest.raises(ConfigurationError) as excinfo:
            ConfigLoader(path).simulation_parameters()
        assert excinfo.value.field == "temperature"

    def test_invalid_value(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"r": -0.2}})
        with pytest.raises(ConfigurationError) as excinfo:
            ConfigLoader(path).simulation_parameters()
        assert excinfo.value.field == "r"


class TestMain:
    """Tests for the command-line entry point."""

    SHORT_RUN = {
        "simulation": {"N": 20, "L": 5.0, "r": 0.1, "equilibrium_time": 0.2, "stats_duration": 0.5},
        "sub_steps": 5,
        "chart_every": 2,
    }

    def test_runs_to_completion(self, tmp_path, caplog):
        path = _write(tmp_path / "config.json", self.SHORT_RUN)
        with caplog.at_level("INFO"):
            assert app.main(["--config", str(path), "--seed", "3"]) == 0
        assert "Mean speed" in caplog.text

    def test_app_report(self, tmp_path):
        path = _write(tmp_path / "config.json", self.SHORT_RUN)
        report = app.App(path, seed=3).run()
        assert report.n_samples > 0
        assert report.theoretical_mean_speed > 0.0

    def test_frame_limit(self, tmp_path):
        path = _write(tmp_path / "config.json", self.SHORT_RUN)
        application = app.App(path, seed=3)
        application.run(max_frames=2)
        assert application.demo.frame_no == 2
        assert not application.demo.finished

    def test_invalid_config_exit_code(self, tmp_path):
        path = _write(tmp_path / "config.json", {"simulation": {"N": 0}})
        assert app.main(["--config", str(path)]) == 2
