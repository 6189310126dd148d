"""Discrete-line gamma source emitting into a forward cone."""

from typing import List, Optional, Sequence, Tuple
import math
import numpy as np
import torch

from .data_models import PrimaryEmission
from ..physics.spectrum_database import SpectrumLine
from ..physics.constants import DEFAULT_LINE_MATCH_TOLERANCE_KEV
from ..utils.logging import get_logger
from ..utils.validation import (
    InvalidConfigurationError,
    InvalidSpectrumError,
    validate_probability,
)


logger = get_logger()


def direction_vector(theta: float, phi: float) -> Tuple[float, float, float]:
    """Unit vector for polar angle theta and azimuth phi (radians)."""
    sin_theta = math.sin(theta)
    return (sin_theta * math.cos(phi), sin_theta * math.sin(phi), math.cos(theta))


class SourceModel:
    """Samples the primary gammas of one decay.

    Every spectrum line is an independent Bernoulli trial, so a single
    decay may emit zero, one or several gammas. Emission directions are
    isotropic within a cone of half-angle ``cone_half_angle_rad`` around +z.

    Attributes:
        lines: Spectrum lines in emission order
        cone_half_angle_rad: Cone half-angle in radians
        device: Device for tensor operations
    """

    def __init__(
        self,
        lines: Sequence[SpectrumLine],
        cone_half_angle_rad: float,
        seed: Optional[int] = None,
        device: str = 'cpu',
        line_match_tolerance_keV: float = DEFAULT_LINE_MATCH_TOLERANCE_KEV
    ):
        """Initialize SourceModel.

        Args:
            lines: Spectrum lines (energy in keV, probability per decay)
            cone_half_angle_rad: Emission cone half-angle in (0, pi]
            seed: Random seed (None for a non-deterministic seed)
            device: Device for tensor operations ('cuda' or 'cpu')
            line_match_tolerance_keV: Default window of ``line_index_for_energy``

        Raises:
            InvalidSpectrumError: If the spectrum is empty or a line is invalid
            InvalidConfigurationError: If the cone half-angle is out of range
        """
        if not lines:
            raise InvalidSpectrumError("Spectrum must contain at least one line")
        for line in lines:
            if not line.energy_keV > 0:
                raise InvalidSpectrumError(f"Line energy must be positive, got {line.energy_keV}")
            validate_probability(line.probability, f"Line {line.name}")
        if not 0.0 < cone_half_angle_rad <= math.pi:
            raise InvalidConfigurationError(
                f"Cone half-angle must be in (0, pi], got {cone_half_angle_rad}"
            )

        self.lines = list(lines)
        self.cone_half_angle_rad = float(cone_half_angle_rad)
        self.device = device
        self.line_match_tolerance_keV = line_match_tolerance_keV

        self.generator = torch.Generator(device=device)
        if seed is None:
            self.generator.seed()
        else:
            self.generator.manual_seed(seed)

        self._energies = torch.tensor(
            [line.energy_keV for line in self.lines], dtype=torch.float64, device=device
        )
        self._probabilities = torch.tensor(
            [line.probability for line in self.lines], dtype=torch.float64, device=device
        )
        self._cos_cone = math.cos(self.cone_half_angle_rad)

        logger.info(
            f"SourceModel initialized: {len(self.lines)} lines, "
            f"{self.mean_primaries_per_decay:.4f} gammas/decay, "
            f"cone half-angle {math.degrees(self.cone_half_angle_rad):.1f} deg"
        )

    @property
    def n_lines(self) -> int:
        return len(self.lines)

    @property
    def mean_primaries_per_decay(self) -> float:
        """Expected number of gammas per decay (sum of line probabilities)."""
        return float(self._probabilities.sum().item())

    @property
    def variance_primaries_per_decay(self) -> float:
        p = self._probabilities
        return float((p * (1.0 - p)).sum().item())

    def _uniform(self, n: int) -> torch.Tensor:
        return torch.rand(n, generator=self.generator, dtype=torch.float64, device=self.device)

    def generate_event(self) -> List[PrimaryEmission]:
        """Sample the gammas emitted by one decay.

        Returns:
            Primary emissions in line order, identities 1..n
        """
        fired = self._uniform(self.n_lines) < self._probabilities
        line_indices = torch.nonzero(fired, as_tuple=False).flatten()
        n_emitted = len(line_indices)
        if n_emitted == 0:
            return []

        u = self._uniform(n_emitted)
        cos_theta = 1.0 - u * (1.0 - self._cos_cone)
        theta = torch.acos(torch.clamp(cos_theta, -1.0, 1.0))
        phi = 2 * np.pi * self._uniform(n_emitted)
        energies = self._energies[line_indices]

        primaries = []
        for i in range(n_emitted):
            primaries.append(PrimaryEmission(
                identity=i + 1,
                energy_keV=energies[i].item(),
                theta=theta[i].item(),
                phi=phi[i].item(),
                line_index=int(line_indices[i].item()),
            ))
        return primaries

    def line_index_for_energy(
        self,
        energy_keV: float,
        tolerance_keV: Optional[float] = None
    ) -> int:
        """Index of the nearest line within tolerance, -1 if none matches."""
        if tolerance_keV is None:
            tolerance_keV = self.line_match_tolerance_keV
        distances = torch.abs(self._energies - energy_keV)
        index = int(torch.argmin(distances).item())
        if distances[index].item() < tolerance_keV:
            return index
        return -1

    def line_names(self) -> List[str]:
        return [line.name for line in self.lines]
