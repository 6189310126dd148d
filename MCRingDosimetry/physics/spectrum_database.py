"""Emission spectrum database loader."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..utils.logging import get_logger
from ..utils.validation import InvalidSpectrumError, validate_probability


logger = get_logger()

INTENSITY_SCALES = {
    'percent_per_decay': 0.01,
    'probability': 1.0,
}


@dataclass(frozen=True)
class SpectrumLine:
    """Discrete emission line.

    Attributes:
        energy_keV: Line energy in keV
        probability: Emission probability per decay, in [0, 1]
    """
    energy_keV: float
    probability: float

    @property
    def name(self) -> str:
        return f"{self.energy_keV:.0f} keV"


class SpectrumDatabase:
    """Manages discrete gamma spectra from a JSON database.

    Each nuclide entry lists lines with an energy in keV and an intensity,
    expressed either in percent per decay or as a probability. Intensities
    are converted to per-decay emission probabilities at load time.

    Attributes:
        database_path: Path to JSON spectrum database
        spectra: Parsed lines by nuclide name
        half_lives: Half-life in seconds by nuclide name
    """

    def __init__(self, database_path: str):
        """Initialize SpectrumDatabase.

        Args:
            database_path: Path to JSON spectrum database file
        """
        self.database_path = Path(database_path)
        self.spectra: Dict[str, List[SpectrumLine]] = {}
        self.half_lives: Dict[str, float] = {}

        if not self.database_path.exists():
            raise FileNotFoundError(f"Spectrum database not found: {database_path}")
        self.load_database()

    def load_database(self) -> None:
        """Load spectrum database from JSON file."""
        logger.info(f"Loading spectrum database from {self.database_path}")

        try:
            with open(self.database_path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidSpectrumError(f"Invalid JSON in spectrum database: {e}") from e

        for nuclide_name, nuclide_data in data.items():
            self.spectra[nuclide_name] = self._parse_lines(nuclide_name, nuclide_data)
            if 'half_life_seconds' in nuclide_data:
                self.half_lives[nuclide_name] = float(nuclide_data['half_life_seconds'])

        logger.info(f"Loaded {len(self.spectra)} spectra from database")

    def _parse_lines(self, name: str, data: dict) -> List[SpectrumLine]:
        units = data.get('intensity_units', 'probability')
        if units not in INTENSITY_SCALES:
            raise InvalidSpectrumError(
                f"Unknown intensity units for {name}: {units}"
            )
        scale = INTENSITY_SCALES[units]

        lines = []
        for entry in data.get('lines', []):
            energy = float(entry['energy_keV'])
            if energy <= 0:
                raise InvalidSpectrumError(f"Non-positive line energy in {name}: {energy}")
            probability = float(entry['intensity']) * scale
            validate_probability(probability, f"{name} {energy:.2f} keV")
            lines.append(SpectrumLine(energy_keV=energy, probability=probability))

        if not lines:
            raise InvalidSpectrumError(f"Spectrum {name} has no lines")
        return lines

    def get_lines(self, nuclide_name: str) -> List[SpectrumLine]:
        """Get spectrum lines by nuclide name.

        Raises:
            KeyError: If the nuclide is not in the database
        """
        if nuclide_name not in self.spectra:
            raise KeyError(
                f"Spectrum not found: {nuclide_name}. Available: {sorted(self.spectra)}"
            )
        return list(self.spectra[nuclide_name])

    def get_half_life(self, nuclide_name: str) -> Optional[float]:
        return self.half_lives.get(nuclide_name)

    def mean_emissions_per_decay(self, nuclide_name: str) -> float:
        return sum(line.probability for line in self.get_lines(nuclide_name))
