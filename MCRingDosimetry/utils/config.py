"""Configuration management for ring dosimetry runs."""

from dataclasses import dataclass, field, asdict
from typing import Dict, Optional
import math
import yaml
from pathlib import Path

from ..physics_data import DEFAULT_SPECTRUM_DATABASE
from .validation import InvalidConfigurationError


TOLERANCE_MODES = ('relative', 'absolute')


@dataclass
class SimulationConfig:
    """Configuration for an instrumented Eu-152 ring dosimetry run.

    Attributes:
        num_events: Number of simulated decays (events) to process
        spectrum_name: Name of the emission spectrum in the spectrum database
        source_activity_bq: Isotropic (4 pi) source activity in Bq
        cone_half_angle_deg: Half-angle of the biased emission cone in degrees
        mean_primaries_per_decay: Mean gammas per decay (None: derived from the spectrum)
        transmission_tolerance: Energy-loss tolerance for the transmitted classification
        tolerance_mode: 'relative' (fraction of the upstream energy) or 'absolute' (keV)
        num_rings: Number of concentric water rings
        ring_width_mm: Radial width of every ring in mm
        water_thickness_mm: Axial thickness of the water layer in mm
        water_density_g_cm3: Water density in g/cm³
        line_match_tolerance_keV: Window for mapping an energy to a spectrum line
        reliability_threshold: Minimum deposit count for a trustworthy relative error
        diagnostic_max_events: Events with id below this value produce diagnostics
        record_events: Keep per-event rows for row-oriented persistence
        output_format: Output format ('file' or 'object')
        output_path: Path for output files (required if output_format='file')
        random_seed: Random seed for reproducibility (None for random)
        device: Tensor device ('cuda' or 'cpu')
        spectrum_database_path: Path to spectrum database JSON file
        volume_names: Overrides for the transport volume names
    """
    num_events: int = 100000
    spectrum_name: str = 'Eu-152'
    source_activity_bq: float = 44000.0
    cone_half_angle_deg: float = 20.0
    mean_primaries_per_decay: Optional[float] = None
    transmission_tolerance: float = 0.01
    tolerance_mode: str = 'relative'
    num_rings: int = 5
    ring_width_mm: float = 5.0
    water_thickness_mm: float = 5.0
    water_density_g_cm3: float = 1.0
    line_match_tolerance_keV: float = 0.5
    reliability_threshold: int = 30
    diagnostic_max_events: int = 10
    record_events: bool = True
    output_format: str = 'object'
    output_path: Optional[str] = None
    random_seed: Optional[int] = None
    device: str = 'cpu'
    spectrum_database_path: Optional[str] = None
    volume_names: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.spectrum_database_path is None:
            if DEFAULT_SPECTRUM_DATABASE is None:
                raise InvalidConfigurationError(
                    "No spectrum database path provided and default database not found."
                )
            self.spectrum_database_path = DEFAULT_SPECTRUM_DATABASE

        self._validate()

    def _validate(self) -> None:
        """Validate configuration parameters."""
        import torch
        from .logging import get_logger
        logger = get_logger()

        if self.num_events < 0:
            raise InvalidConfigurationError(
                f"num_events must be non-negative, got {self.num_events}"
            )

        if not self.spectrum_name or not isinstance(self.spectrum_name, str):
            raise InvalidConfigurationError("spectrum_name must be a non-empty string")

        if not math.isfinite(self.source_activity_bq) or self.source_activity_bq < 0:
            raise InvalidConfigurationError(
                f"source_activity_bq must be non-negative, got {self.source_activity_bq}"
            )

        if not 0.0 < self.cone_half_angle_deg <= 180.0:
            raise InvalidConfigurationError(
                f"cone_half_angle_deg must be in (0, 180], got {self.cone_half_angle_deg}"
            )

        if self.mean_primaries_per_decay is not None and self.mean_primaries_per_decay < 0:
            raise InvalidConfigurationError(
                f"mean_primaries_per_decay must be non-negative, got {self.mean_primaries_per_decay}"
            )

        if self.tolerance_mode not in TOLERANCE_MODES:
            raise InvalidConfigurationError(
                f"tolerance_mode must be one of {TOLERANCE_MODES}, got {self.tolerance_mode}"
            )

        if self.transmission_tolerance < 0:
            raise InvalidConfigurationError(
                f"transmission_tolerance must be non-negative, got {self.transmission_tolerance}"
            )
        if self.tolerance_mode == 'relative' and self.transmission_tolerance >= 1.0:
            raise InvalidConfigurationError(
                f"Relative transmission_tolerance must be below 1, got {self.transmission_tolerance}"
            )

        # Ring geometry is validated again by RegionCatalog; fail early here
        if self.num_rings < 1:
            raise InvalidConfigurationError(f"num_rings must be at least 1, got {self.num_rings}")
        for name in ('ring_width_mm', 'water_thickness_mm', 'water_density_g_cm3'):
            if getattr(self, name) <= 0:
                raise InvalidConfigurationError(
                    f"{name} must be positive, got {getattr(self, name)}"
                )

        if self.line_match_tolerance_keV <= 0:
            raise InvalidConfigurationError(
                f"line_match_tolerance_keV must be positive, got {self.line_match_tolerance_keV}"
            )

        if self.diagnostic_max_events < 0:
            raise InvalidConfigurationError(
                f"diagnostic_max_events must be non-negative, got {self.diagnostic_max_events}"
            )

        if self.output_format not in ['file', 'object']:
            raise InvalidConfigurationError(
                f"output_format must be 'file' or 'object', got {self.output_format}"
            )

        if self.output_format == 'file' and not self.output_path:
            raise InvalidConfigurationError("output_path is required when output_format='file'")

        if self.device not in ['cuda', 'cpu']:
            raise InvalidConfigurationError(f"device must be 'cuda' or 'cpu', got {self.device}")

        if self.device == 'cuda' and not torch.cuda.is_available():
            logger.warning("CUDA requested but not available, falling back to CPU")
            self.device = 'cpu'

    @property
    def cone_half_angle_rad(self) -> float:
        return math.radians(self.cone_half_angle_deg)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'SimulationConfig':
        """Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            SimulationConfig instance
        """
        with open(yaml_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        if config_dict.get('volume_names') is None:
            config_dict.pop('volume_names', None)

        return cls(**config_dict)

    def to_yaml(self, yaml_path: str) -> None:
        """Save configuration to YAML file.

        Args:
            yaml_path: Path to save YAML configuration
        """
        config_dict = asdict(self)
        config_dict['volume_names'] = dict(self.volume_names)

        Path(yaml_path).parent.mkdir(parents=True, exist_ok=True)
        with open(yaml_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False)

    @staticmethod
    def get_default_config() -> 'SimulationConfig':
        """Get a default configuration for testing.

        Returns:
            SimulationConfig reproducing the reference puits-couronne setup
        """
        return SimulationConfig(
            num_events=100000,
            spectrum_name='Eu-152',
            source_activity_bq=44000.0,
            cone_half_angle_deg=20.0,
            transmission_tolerance=0.01,
            tolerance_mode='relative',
            output_format='object'
        )
