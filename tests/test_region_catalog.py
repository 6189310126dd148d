"""Region catalog tests: ring partition, masses, name lookup and geometry parameters."""

import math

import pytest

from MCRingDosimetry.core.region_catalog import (
    GeometryParameters,
    RegionCatalog,
    mixture_density,
    strip_logical_suffix,
)
from MCRingDosimetry.physics.constants import PETG_DENSITY, TUNGSTEN_DENSITY
from MCRingDosimetry.utils.validation import InvalidGeometryError


class TestRingPartition:
    """Rings tile the measurement plane without gaps."""

    def test_contiguous_rings(self, catalog: RegionCatalog):
        for i in range(catalog.region_count() - 1):
            assert catalog.outer_radius(i) == catalog.inner_radius(i + 1)

    def test_first_ring_starts_at_axis(self, catalog: RegionCatalog):
        assert catalog.inner_radius(0) == 0.0

    def test_bounds_follow_ring_width(self):
        catalog = RegionCatalog(n_regions=3, ring_width_mm=2.5)
        assert catalog.inner_radius(2) == pytest.approx(5.0)
        assert catalog.outer_radius(2) == pytest.approx(7.5)

    def test_region_out_of_range(self, catalog: RegionCatalog):
        with pytest.raises(IndexError):
            catalog.region(5)
        assert not catalog.is_valid_index(-1)
        assert not catalog.is_valid_index(5)


class TestMasses:
    """Masses derived from volume and density."""

    def test_ring_mass(self, catalog: RegionCatalog):
        # pi * (10² - 5²) mm² * 5 mm = 1178.1 mm³ of water -> 1.178 g
        expected_kg = math.pi * (10.0 ** 2 - 5.0 ** 2) * 5.0 * 1e-3 * 1.0 * 1e-3
        assert catalog.mass(1) == pytest.approx(expected_kg)

    def test_mass_conservation(self, catalog: RegionCatalog):
        """Sum of ring masses equals the mass of the full disc."""
        n = catalog.region_count()
        disc_kg = math.pi * catalog.outer_radius(n - 1) ** 2 * 5.0 * 1e-3 * 1.0 * 1e-3
        assert catalog.total_mass() == pytest.approx(disc_kg, rel=1e-12)
        assert sum(catalog.masses()) == pytest.approx(disc_kg, rel=1e-12)

    def test_density_scales_mass(self):
        light = RegionCatalog(n_regions=2, density_g_cm3=1.0)
        heavy = RegionCatalog(n_regions=2, density_g_cm3=2.0)
        assert heavy.mass(1) == pytest.approx(2.0 * light.mass(1))


class TestConstructionErrors:

    @pytest.mark.parametrize("kwargs", [
        {'ring_width_mm': 0.0},
        {'ring_width_mm': -1.0},
        {'thickness_mm': 0.0},
        {'density_g_cm3': 0.0},
        {'n_regions': 0},
    ])
    def test_invalid_geometry(self, kwargs):
        with pytest.raises(InvalidGeometryError):
            RegionCatalog(**kwargs)


class TestVolumeLookup:

    def test_physical_name(self, catalog: RegionCatalog):
        assert catalog.index_for_volume('WaterRing_3') == 3

    def test_logical_name(self, catalog: RegionCatalog):
        assert catalog.index_for_volume('WaterRing_3Log') == 3

    def test_non_ring_volume(self, catalog: RegionCatalog):
        assert catalog.index_for_volume('Filter') is None
        assert catalog.index_for_volume('WaterRing_7') is None

    def test_strip_suffix(self):
        assert strip_logical_suffix('FilterLog') == 'Filter'
        assert strip_logical_suffix('Filter') == 'Filter'
        assert strip_logical_suffix('Log') == 'Log'

    def test_index_at_radius(self, catalog: RegionCatalog):
        assert catalog.index_at_radius(0.0) == 0
        assert catalog.index_at_radius(4.999) == 0
        assert catalog.index_at_radius(5.0) == 1
        assert catalog.index_at_radius(24.9) == 4
        assert catalog.index_at_radius(25.0) is None
        assert catalog.index_at_radius(-1.0) is None

    def test_labels(self, catalog: RegionCatalog):
        assert catalog.labels()[0] == 'r=0-5 mm'


class TestGeometryParameters:
    """Filter mixture and plane layout."""

    def test_mixture_density(self):
        rho = mixture_density([0.75, 0.25], [TUNGSTEN_DENSITY, PETG_DENSITY])
        expected = 1.0 / (0.75 / TUNGSTEN_DENSITY + 0.25 / PETG_DENSITY)
        assert rho == pytest.approx(expected)
        assert PETG_DENSITY < rho < TUNGSTEN_DENSITY

    def test_mixture_fractions_must_sum_to_one(self):
        with pytest.raises(InvalidGeometryError):
            mixture_density([0.5, 0.25], [TUNGSTEN_DENSITY, PETG_DENSITY])

    def test_filter_mass(self):
        geometry = GeometryParameters()
        volume_cm3 = math.pi * 25.0 ** 2 * 5.0 * 1e-3
        assert geometry.filter_mass_kg == pytest.approx(
            volume_cm3 * geometry.filter_density_g_cm3 * 1e-3
        )

    def test_reference_planes_bracket_filter(self):
        geometry = GeometryParameters()
        planes = geometry.plane_positions_mm()
        assert planes['UpstreamDetector'] < geometry.filter_z_mm < planes['DownstreamDetector']
        assert planes['PreFilterPlane'] < geometry.filter_z_mm < planes['PostFilterPlane']

    def test_invalid_fraction(self):
        with pytest.raises(InvalidGeometryError):
            GeometryParameters(filter_tungsten_fraction=1.5)
