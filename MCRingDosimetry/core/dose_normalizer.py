"""Conversion of accumulated ring deposits into calibrated dose rates."""

import math
from typing import Optional
import torch

from .data_models import DoseReport, RegionDose, RunStatistics
from .region_catalog import RegionCatalog
from ..physics.constants import (
    DEFAULT_RELIABILITY_THRESHOLD,
    FULL_SOLID_ANGLE_SR,
    GY_PER_S_TO_NGY_PER_H,
    KEV_TO_JOULES,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
)
from ..utils.logging import get_logger


logger = get_logger()


def format_duration(seconds: float) -> str:
    """Human readable duration in s, min or h."""
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds:.3f} s"
    if seconds < SECONDS_PER_HOUR:
        return f"{seconds / SECONDS_PER_MINUTE:.2f} min"
    return f"{seconds / SECONDS_PER_HOUR:.2f} h"


def solid_angle_fraction(cone_half_angle_rad: float) -> float:
    """Fraction of 4pi covered by a cone: f = (1 - cos(theta)) / 2."""
    return (1.0 - math.cos(cone_half_angle_rad)) / 2.0


def irradiation_time(n_events: int, cone_half_angle_rad: float, activity_bq: float) -> float:
    """Real irradiation time equivalent to ``n_events`` cone-biased decays.

    T = N / (f * A), zero when f, A or N is not positive.
    """
    f = solid_angle_fraction(cone_half_angle_rad)
    if f <= 0 or activity_bq <= 0 or n_events <= 0:
        return 0.0
    return n_events / (f * activity_bq)


class DoseNormalizer:
    """Renormalizes cone-biased ring deposits into dose rates.

    The source only emits into a cone covering a fraction ``f`` of the full
    solid angle, so ``N`` simulated decays stand for ``N / f`` isotropic
    decays, i.e. an irradiation time ``T = N / (f * A)`` for a source of
    activity ``A``. Ring doses are ``E / m`` and dose rates ``E / m / T``.

    Attributes:
        catalog: Region catalog providing ring masses
        reliability_threshold: Minimum event count for a trusted 1/sqrt(N) error
    """

    def __init__(
        self,
        catalog: RegionCatalog,
        reliability_threshold: int = DEFAULT_RELIABILITY_THRESHOLD
    ):
        self.catalog = catalog
        self.reliability_threshold = reliability_threshold

    def solid_angle_fraction(self, stats: RunStatistics) -> float:
        return solid_angle_fraction(stats.cone_half_angle_rad)

    def irradiation_time(self, stats: RunStatistics, n_events: Optional[int] = None) -> float:
        """Irradiation time in seconds for ``n_events`` (default: events of the run)."""
        if n_events is None:
            n_events = stats.total_events
        return irradiation_time(n_events, stats.cone_half_angle_rad, stats.source_activity_bq)

    def finalize(self, stats: RunStatistics) -> DoseReport:
        """Compute per-ring and mass-weighted dose rates.

        Args:
            stats: Accumulated run statistics

        Returns:
            Dose report
        """
        if stats.n_regions != self.catalog.region_count():
            raise ValueError(
                f"Statistics cover {stats.n_regions} regions, catalog has {self.catalog.region_count()}"
            )

        n_events = stats.total_events
        f = self.solid_angle_fraction(stats)
        time_s = self.irradiation_time(stats)
        equivalent_decays = n_events / f if f > 0 else 0.0

        energy_keV = stats.total_energy_keV.detach().to('cpu', torch.float64)
        energy_sq = stats.total_energy_squared_keV2.detach().to('cpu', torch.float64)
        counts = stats.event_count_with_deposit.detach().to('cpu', torch.int64)
        masses = torch.tensor(self.catalog.masses(), dtype=torch.float64)

        dose_gy = energy_keV * KEV_TO_JOULES / masses
        dose_rate = dose_gy / time_s if time_s > 0 else torch.zeros_like(dose_gy)

        relative_error = torch.zeros_like(energy_keV)
        nonzero = counts > 0
        relative_error[nonzero] = 1.0 / torch.sqrt(counts[nonzero].to(torch.float64))

        history_error = self._history_relative_error(energy_keV, energy_sq, n_events)

        regions = []
        for i, region in enumerate(self.catalog):
            regions.append(RegionDose(
                index=region.index,
                inner_radius_mm=region.inner_radius_mm,
                outer_radius_mm=region.outer_radius_mm,
                mass_kg=region.mass_kg,
                energy_deposited_keV=energy_keV[i].item(),
                event_count=int(counts[i].item()),
                dose_gy=dose_gy[i].item(),
                dose_rate_gy_per_s=dose_rate[i].item(),
                dose_rate_ngy_per_h=dose_rate[i].item() * GY_PER_S_TO_NGY_PER_H,
                relative_error=relative_error[i].item(),
                history_relative_error=history_error[i].item(),
                reliable=int(counts[i].item()) >= self.reliability_threshold,
            ))

        total_mass = float(masses.sum().item())
        total_energy = float(energy_keV.sum().item())
        mean_dose = float((dose_gy * masses).sum().item()) / total_mass
        total_rate = mean_dose / time_s if time_s > 0 else 0.0
        water_count = stats.total_water_event_count

        primaries = stats.total_primaries_generated
        report = DoseReport(
            regions=regions,
            n_events=n_events,
            solid_angle_fraction=f,
            solid_angle_sr=f * FULL_SOLID_ANGLE_SR,
            equivalent_decays_4pi=equivalent_decays,
            irradiation_time_s=time_s,
            total_mass_kg=total_mass,
            total_energy_keV=total_energy,
            mean_dose_gy=mean_dose,
            total_dose_rate_gy_per_s=total_rate,
            total_dose_rate_ngy_per_h=total_rate * GY_PER_S_TO_NGY_PER_H,
            total_relative_error=1.0 / math.sqrt(water_count) if water_count > 0 else 0.0,
            mean_primaries_per_event=primaries / n_events if n_events else 0.0,
            zero_primary_fraction=stats.total_events_with_zero_primaries / n_events if n_events else 0.0,
            transmission_rate=stats.total_transmitted / primaries if primaries else 0.0,
            absorption_rate=stats.total_absorbed / primaries if primaries else 0.0,
        )

        if time_s == 0:
            logger.warning("Irradiation time is zero (no events or no activity); dose rates set to 0")
        for region in regions:
            if 0 < region.event_count < self.reliability_threshold:
                logger.warning(
                    f"Ring {region.index}: only {region.event_count} events with deposit, "
                    f"relative error {region.relative_error * 100:.1f}% is unreliable"
                )
        logger.info(
            f"Dose normalized: T={format_duration(time_s)}, "
            f"total dose rate {report.total_dose_rate_ngy_per_h:.4g} nGy/h"
        )
        return report

    @staticmethod
    def _history_relative_error(
        energy_keV: torch.Tensor,
        energy_sq: torch.Tensor,
        n_events: int
    ) -> torch.Tensor:
        """Relative standard error of the mean deposit per history."""
        error = torch.zeros_like(energy_keV)
        if n_events < 2:
            return error
        mean = energy_keV / n_events
        variance = torch.clamp(energy_sq / n_events - mean * mean, min=0.0)
        nonzero = mean > 0
        error[nonzero] = torch.sqrt(variance[nonzero] / n_events) / mean[nonzero]
        return error
