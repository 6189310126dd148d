"""
Basic usage example for the ring dosimetry instrumentation.

This example demonstrates how to:
1. Configure a run
2. Plug a transport engine into the step dispatcher
3. Run the event loop and read the dose report

The transport engine below is a straight-line toy model: every gamma flies
along its emission direction, may be absorbed in the filter with an
exponential attenuation probability, and deposits its energy in the ring
it hits with a fixed interaction probability. It only exists to drive the
step callbacks; real studies plug in a full transport code.
"""

import math
import torch

from MCRingDosimetry import DosimetryRun, SimulationConfig
from MCRingDosimetry.core import GeometryParameters, StepRecord
from MCRingDosimetry.utils import setup_logger


class StraightLineEngine:
    """Toy engine emitting the step sequence of straight gamma trajectories."""

    def __init__(
        self,
        geometry: GeometryParameters,
        filter_mu_per_mm: float = 0.05,
        water_interaction_probability: float = 0.05,
        seed: int = 0
    ):
        self.geometry = geometry
        self.filter_mu_per_mm = filter_mu_per_mm
        self.water_interaction_probability = water_interaction_probability
        self.generator = torch.Generator().manual_seed(seed)

    def _uniform(self) -> float:
        return torch.rand(1, generator=self.generator).item()

    def transport(self, event_id, primaries, observer):
        geometry = self.geometry
        for primary in primaries:
            direction = primary.direction()
            energy = primary.energy_keV

            def step(current, following, z, **kwargs):
                dz = z - geometry.source_z_mm
                scale = dz / direction[2] if direction[2] > 0 else 0.0
                position = (direction[0] * scale, direction[1] * scale, z)
                observer.on_step(StepRecord(
                    event_id=event_id, current_volume=current, next_volume=following,
                    track_id=primary.identity, parent_id=0, particle_name='gamma',
                    pdg_code=22, kinetic_energy_keV=energy, position_mm=position,
                    direction=direction, **kwargs
                ))
                return position

            planes = geometry.plane_positions_mm()
            filter_front = geometry.filter_z_mm - geometry.filter_thickness_mm / 2
            filter_back = geometry.filter_z_mm + geometry.filter_thickness_mm / 2

            step('World', 'UpstreamDetector', planes['UpstreamDetector'])
            step('World', 'PreFilterPlane', planes['PreFilterPlane'])

            position = step('World', 'Filter', filter_front)
            if math.hypot(position[0], position[1]) < geometry.filter_radius_mm:
                path_mm = geometry.filter_thickness_mm / direction[2]
                if self._uniform() > math.exp(-self.filter_mu_per_mm * path_mm):
                    step('Filter', 'Filter', geometry.filter_z_mm,
                         energy_deposit_keV=energy, track_killed=True)
                    continue
                step('Filter', 'World', filter_back, post_kinetic_energy_keV=energy)

            step('World', 'PostFilterPlane', planes['PostFilterPlane'])
            step('World', 'DownstreamDetector', planes['DownstreamDetector'])

            water_z = geometry.container_z_mm
            position = step('World', 'ContainerTop', water_z - 1.0)
            ring_radius = math.hypot(position[0], position[1])
            ring_index = int(ring_radius // 5.0)
            if ring_index < 5:
                ring = f'WaterRing_{ring_index}'
                step('ContainerTop', ring, water_z)
                if self._uniform() < self.water_interaction_probability:
                    step(ring, ring, water_z + 1.0, energy_deposit_keV=energy, track_killed=True)


def main():
    logger = setup_logger(level=20)  # INFO level

    config = SimulationConfig(
        num_events=20000,
        spectrum_name='Eu-152',
        source_activity_bq=44000.0,
        cone_half_angle_deg=20.0,
        transmission_tolerance=0.01,
        tolerance_mode='relative',
        diagnostic_max_events=5,
        random_seed=42,
        output_format='object'
    )

    geometry = GeometryParameters()
    engine = StraightLineEngine(geometry)
    run = DosimetryRun(config, engine, geometry=geometry)
    results = run.run()

    report = results['dose_report']
    logger.info(f"Irradiation time: {report.irradiation_time_s:.3f} s")
    for region in report.regions:
        logger.info(
            f"Ring {region.index}: {region.dose_rate_ngy_per_h:.3g} nGy/h "
            f"+/- {region.relative_error * 100:.1f}%"
        )
    logger.info(f"Total: {report.total_dose_rate_ngy_per_h:.3g} nGy/h")

    return results


if __name__ == '__main__':
    main()
