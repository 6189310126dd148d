"""Region catalog for the concentric water rings and layered geometry parameters."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import math

from .data_models import Region
from ..physics.constants import (
    GRAMS_TO_KG,
    MM3_TO_CM3,
    PETG_DENSITY,
    TUNGSTEN_DENSITY,
    WATER_DENSITY,
)
from ..utils.logging import get_logger
from ..utils.validation import InvalidGeometryError, validate_positive


logger = get_logger()

LOGICAL_VOLUME_SUFFIX = 'Log'


def strip_logical_suffix(volume_name: str) -> str:
    """Map a logical volume name ('WaterRing_0Log') to its physical name."""
    if volume_name.endswith(LOGICAL_VOLUME_SUFFIX) and len(volume_name) > len(LOGICAL_VOLUME_SUFFIX):
        return volume_name[:-len(LOGICAL_VOLUME_SUFFIX)]
    return volume_name


def mixture_density(mass_fractions: Sequence[float], densities: Sequence[float]) -> float:
    """Density of a homogeneous mixture by the rule of mixtures.

    1/rho_mix = sum(w_i / rho_i)

    Args:
        mass_fractions: Mass fraction of each component (must sum to 1)
        densities: Density of each component in g/cm³

    Returns:
        Mixture density in g/cm³
    """
    if len(mass_fractions) != len(densities) or not mass_fractions:
        raise InvalidGeometryError("Mixture needs one density per mass fraction")
    if abs(sum(mass_fractions) - 1.0) > 1e-6:
        raise InvalidGeometryError(
            f"Mass fractions must sum to 1, got {sum(mass_fractions):.6f}"
        )
    for rho in densities:
        validate_positive(rho, "Component density")
    return 1.0 / sum(w / rho for w, rho in zip(mass_fractions, densities))


@dataclass(frozen=True)
class GeometryParameters:
    """Dimensions of the filter / container / counting-plane layout (mm, g/cm³).

    Only used for bookkeeping (filter mass, plane positions in the run
    summary); the transport engine owns the actual geometry.
    """
    source_z_mm: float = 20.0
    filter_radius_mm: float = 25.0
    filter_thickness_mm: float = 5.0
    filter_z_mm: float = 40.0
    filter_tungsten_fraction: float = 0.75
    container_inner_radius_mm: float = 25.0
    container_inner_height_mm: float = 7.0
    container_wall_thickness_mm: float = 2.0
    container_z_mm: float = 100.0
    counting_plane_thickness_mm: float = 1.0
    counting_plane_gap_mm: float = 1.0
    detector_plane_gap_mm: float = 2.0

    def __post_init__(self):
        for name in ('filter_radius_mm', 'filter_thickness_mm', 'container_inner_radius_mm',
                     'container_inner_height_mm', 'container_wall_thickness_mm',
                     'counting_plane_thickness_mm'):
            validate_positive(getattr(self, name), name)
        if not 0.0 <= self.filter_tungsten_fraction <= 1.0:
            raise InvalidGeometryError(
                f"filter_tungsten_fraction must be in [0, 1], got {self.filter_tungsten_fraction}"
            )

    @property
    def filter_density_g_cm3(self) -> float:
        w = self.filter_tungsten_fraction
        return mixture_density([w, 1.0 - w], [TUNGSTEN_DENSITY, PETG_DENSITY])

    @property
    def filter_mass_kg(self) -> float:
        volume_mm3 = math.pi * self.filter_radius_mm ** 2 * self.filter_thickness_mm
        return volume_mm3 * MM3_TO_CM3 * self.filter_density_g_cm3 * GRAMS_TO_KG

    def plane_positions_mm(self) -> Dict[str, float]:
        """Axial centres of the reference and counting planes."""
        filter_front = self.filter_z_mm - self.filter_thickness_mm / 2
        filter_back = self.filter_z_mm + self.filter_thickness_mm / 2
        half_plane = self.counting_plane_thickness_mm / 2
        return {
            'UpstreamDetector': filter_front - self.detector_plane_gap_mm - half_plane,
            'DownstreamDetector': filter_back + self.detector_plane_gap_mm + half_plane,
            'PreFilterPlane': filter_front - self.counting_plane_gap_mm - half_plane,
            'PostFilterPlane': filter_back + self.counting_plane_gap_mm + half_plane,
        }


class RegionCatalog:
    """Immutable lookup of the concentric water rings.

    Ring i spans radius [i * w, (i + 1) * w); ring 0 is the central disc.
    Masses are precomputed as pi * (r_out² - r_in²) * thickness * density.

    Attributes:
        ring_width_mm: Radial width of each ring
        thickness_mm: Axial thickness of the water layer
        density_g_cm3: Water density
        name_prefix: Prefix of the ring volume names
    """

    def __init__(
        self,
        n_regions: int = 5,
        ring_width_mm: float = 5.0,
        thickness_mm: float = 5.0,
        density_g_cm3: float = WATER_DENSITY,
        name_prefix: str = 'WaterRing_'
    ):
        """Initialize RegionCatalog.

        Raises:
            InvalidGeometryError: If a dimension or the density is not positive
        """
        if n_regions < 1:
            raise InvalidGeometryError(f"n_regions must be at least 1, got {n_regions}")
        validate_positive(ring_width_mm, "Ring width")
        validate_positive(thickness_mm, "Water thickness")
        validate_positive(density_g_cm3, "Water density")

        self.ring_width_mm = float(ring_width_mm)
        self.thickness_mm = float(thickness_mm)
        self.density_g_cm3 = float(density_g_cm3)
        self.name_prefix = name_prefix

        self._regions: List[Region] = []
        for i in range(n_regions):
            r_in = i * self.ring_width_mm
            r_out = (i + 1) * self.ring_width_mm
            volume_mm3 = math.pi * (r_out ** 2 - r_in ** 2) * self.thickness_mm
            mass_kg = volume_mm3 * MM3_TO_CM3 * self.density_g_cm3 * GRAMS_TO_KG
            self._regions.append(Region(
                index=i,
                name=f"{name_prefix}{i}",
                inner_radius_mm=r_in,
                outer_radius_mm=r_out,
                thickness_mm=self.thickness_mm,
                mass_kg=mass_kg,
            ))
        self._name_to_index: Dict[str, int] = {r.name: r.index for r in self._regions}

        logger.info(
            f"RegionCatalog initialized: {n_regions} rings of {self.ring_width_mm} mm, "
            f"total water mass {self.total_mass() * 1000:.3f} g"
        )

    def region_count(self) -> int:
        return len(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self):
        return iter(self._regions)

    def is_valid_index(self, index: int) -> bool:
        return 0 <= index < len(self._regions)

    def region(self, index: int) -> Region:
        if not self.is_valid_index(index):
            raise IndexError(f"Region index {index} out of range [0, {len(self._regions)})")
        return self._regions[index]

    def inner_radius(self, index: int) -> float:
        return self.region(index).inner_radius_mm

    def outer_radius(self, index: int) -> float:
        return self.region(index).outer_radius_mm

    def mass(self, index: int) -> float:
        """Mass of ring ``index`` in kg."""
        return self.region(index).mass_kg

    def masses(self) -> List[float]:
        return [r.mass_kg for r in self._regions]

    def total_mass(self) -> float:
        return sum(self.masses())

    def volume_name(self, index: int) -> str:
        return self.region(index).name

    def index_for_volume(self, volume_name: str) -> Optional[int]:
        """Ring index for a physical or logical volume name, None if not a ring."""
        index = self._name_to_index.get(volume_name)
        if index is None:
            index = self._name_to_index.get(strip_logical_suffix(volume_name))
        return index

    def index_at_radius(self, radius_mm: float) -> Optional[int]:
        """Ring containing the given radius, None outside the outer ring."""
        if radius_mm < 0:
            return None
        index = int(radius_mm // self.ring_width_mm)
        return index if index < len(self._regions) else None

    def labels(self) -> Dict[int, str]:
        return {r.index: r.label for r in self._regions}
