"""Configuration tests: defaults, validation and YAML round trip."""

import math

import pytest

from MCRingDosimetry.physics_data import DEFAULT_SPECTRUM_DATABASE
from MCRingDosimetry.utils.config import SimulationConfig
from MCRingDosimetry.utils.validation import InvalidConfigurationError, validate_config


class TestDefaults:

    def test_reference_configuration(self):
        config = SimulationConfig.get_default_config()
        assert config.spectrum_name == 'Eu-152'
        assert config.source_activity_bq == 44000.0
        assert config.transmission_tolerance == 0.01
        assert config.tolerance_mode == 'relative'
        assert config.num_rings == 5

    def test_bundled_database_used(self):
        assert SimulationConfig().spectrum_database_path == DEFAULT_SPECTRUM_DATABASE

    def test_cone_in_radians(self):
        config = SimulationConfig(cone_half_angle_deg=60.0)
        assert config.cone_half_angle_rad == pytest.approx(math.pi / 3)


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {'num_events': -1},
        {'spectrum_name': ''},
        {'source_activity_bq': -5.0},
        {'cone_half_angle_deg': 0.0},
        {'cone_half_angle_deg': 181.0},
        {'tolerance_mode': 'percent'},
        {'transmission_tolerance': -0.01},
        {'transmission_tolerance': 1.0},
        {'num_rings': 0},
        {'ring_width_mm': 0.0},
        {'diagnostic_max_events': -1},
        {'output_format': 'root'},
        {'device': 'tpu'},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            SimulationConfig(**kwargs)

    def test_absolute_tolerance_may_exceed_one(self):
        config = SimulationConfig(tolerance_mode='absolute', transmission_tolerance=2.0)
        assert config.transmission_tolerance == 2.0

    def test_file_output_requires_path(self):
        with pytest.raises(InvalidConfigurationError):
            SimulationConfig(output_format='file')

    def test_cuda_falls_back_to_cpu(self, monkeypatch):
        import torch
        monkeypatch.setattr(torch.cuda, 'is_available', lambda: False)
        assert SimulationConfig(device='cuda').device == 'cpu'

    def test_missing_database(self, tmp_path):
        config = SimulationConfig(spectrum_database_path=str(tmp_path / 'missing.json'))
        with pytest.raises(InvalidConfigurationError):
            validate_config(config)


class TestYaml:

    def test_round_trip(self, tmp_path):
        config = SimulationConfig(
            num_events=500,
            cone_half_angle_deg=60.0,
            tolerance_mode='absolute',
            transmission_tolerance=1.5,
            random_seed=7,
            volume_names={'filter': 'Attenuator'},
        )
        path = tmp_path / 'config.yaml'
        config.to_yaml(str(path))
        loaded = SimulationConfig.from_yaml(str(path))
        assert loaded == config

    def test_partial_file(self, tmp_path):
        path = tmp_path / 'partial.yaml'
        path.write_text("num_events: 10\nsource_activity_bq: 1000.0\n")
        config = SimulationConfig.from_yaml(str(path))
        assert config.num_events == 10
        assert config.source_activity_bq == 1000.0
        assert config.spectrum_name == 'Eu-152'
