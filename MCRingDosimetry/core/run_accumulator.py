"""Run-wide aggregation of finalized event reports."""

from typing import Dict, Optional
import torch

from .data_models import EventReport, PrimaryFate, RunStatistics
from .histograms import Histogram1D, standard_histograms
from ..utils.logging import get_logger


logger = get_logger()


class RunAccumulator:
    """Aggregates event reports into ``RunStatistics``.

    Reports are expected to be validated by the tracker before ingestion.
    Partial accumulators (one per worker) are combined with ``merge``; every
    accumulated quantity is a plain sum, so the reduction is associative and
    commutative.

    Attributes:
        n_regions: Number of rings
        n_lines: Number of spectrum lines
        device: Device holding the per-region tensors
        statistics: Current run statistics
    """

    def __init__(
        self,
        n_regions: int,
        n_lines: int = 0,
        source_activity_bq: float = 0.0,
        cone_half_angle_rad: float = 0.0,
        mean_primaries_per_decay: float = 0.0,
        device: str = 'cpu',
        region_labels: Optional[Dict[int, str]] = None
    ):
        """Initialize RunAccumulator.

        Args:
            n_regions: Number of rings
            n_lines: Number of spectrum lines (0 disables per-line statistics)
            source_activity_bq: Source activity passed through to the normalizer
            cone_half_angle_rad: Emission cone half-angle passed through
            mean_primaries_per_decay: Expected gammas per decay passed through
            device: Device for tensor operations ('cuda' or 'cpu')
            region_labels: Ring index -> label used in histogram titles
        """
        self.n_regions = n_regions
        self.n_lines = n_lines
        self.source_activity_bq = source_activity_bq
        self.cone_half_angle_rad = cone_half_angle_rad
        self.mean_primaries_per_decay = mean_primaries_per_decay
        self.device = device
        self.region_labels = region_labels or {i: f"ring {i}" for i in range(n_regions)}
        self.statistics = self._empty_statistics()

    def _empty_statistics(self) -> RunStatistics:
        return RunStatistics.create_empty(
            n_regions=self.n_regions,
            n_lines=self.n_lines,
            source_activity_bq=self.source_activity_bq,
            cone_half_angle_rad=self.cone_half_angle_rad,
            mean_primaries_per_decay=self.mean_primaries_per_decay,
            histograms=standard_histograms(self.region_labels),
            device=self.device,
        )

    def reset(self) -> None:
        """Zero all sums at run start."""
        self.statistics = self._empty_statistics()

    def ingest(self, report: EventReport) -> None:
        """Add one finalized event to the run sums.

        Args:
            report: Validated event report
        """
        stats = self.statistics
        stats.total_events += 1
        stats.total_primaries_generated += report.n_primaries
        if report.n_primaries == 0:
            stats.total_events_with_zero_primaries += 1

        stats.total_transmitted += report.n_transmitted
        stats.total_absorbed += report.n_absorbed
        stats.total_scattered += report.n_scattered
        stats.total_unresolved_absorptions += report.n_unresolved
        stats.total_unknown_fates += report.unknown_fates
        stats.total_secondaries_downstream += len(report.secondaries)

        deposits = torch.tensor(report.region_deposits_keV, dtype=torch.float64, device=self.device)
        has_deposit = deposits > 0
        if torch.any(has_deposit):
            stats.total_energy_keV += torch.where(has_deposit, deposits, torch.zeros_like(deposits))
            stats.total_energy_squared_keV2 += torch.where(
                has_deposit, deposits * deposits, torch.zeros_like(deposits)
            )
            stats.event_count_with_deposit += has_deposit.to(torch.int64)

        total_water = report.total_deposit_keV
        if total_water > 0:
            stats.total_water_energy_keV += total_water
            stats.total_water_event_count += 1

        if self.n_lines:
            self._ingest_lines(report)

        stats.plane_counters.add(report.plane_counters)
        stats.container_tally.add(report.container_tally)
        self._fill_histograms(report)

    def _ingest_lines(self, report: EventReport) -> None:
        stats = self.statistics
        for primary in report.primaries:
            k = primary.line_index
            if not 0 <= k < self.n_lines:
                continue
            stats.line_generated[k] += 1
            if primary.transmitted:
                stats.line_transmitted[k] += 1
            if primary.exited_filter:
                stats.line_exited_filter[k] += 1
            if primary.entered_water:
                stats.line_entered_water[k] += 1
            if primary.fate == PrimaryFate.ABSORBED_FILTER:
                stats.line_absorbed_in_filter[k] += 1
            elif primary.fate == PrimaryFate.ABSORBED_WATER:
                stats.line_absorbed_in_water[k] += 1

        if report.region_line_deposits_keV:
            stats.region_line_energy_keV += torch.tensor(
                report.region_line_deposits_keV, dtype=torch.float64, device=self.device
            )

    def _fill_histograms(self, report: EventReport) -> None:
        histograms = self.statistics.histograms
        histograms['n_primaries_per_event'].fill(report.n_primaries)
        if report.n_primaries:
            histograms['energy_spectrum'].fill_many(p.energy_keV for p in report.primaries)
            histograms['total_energy_per_event'].fill(report.total_primary_energy_keV)
        for index, deposit in enumerate(report.region_deposits_keV):
            if deposit > 0:
                histograms[f'ring_deposit_{index}'].fill(deposit)
        if report.total_deposit_keV > 0:
            histograms['total_water_deposit'].fill(report.total_deposit_keV)

    def record_discarded(self) -> None:
        """Count an event dropped because its report was inconsistent."""
        self.statistics.discarded_events += 1

    def merge(self, other: 'RunAccumulator') -> None:
        """Fold another partial accumulator into this one."""
        self.statistics.merge(other.statistics)

    @property
    def histograms(self) -> Dict[str, Histogram1D]:
        return self.statistics.histograms
