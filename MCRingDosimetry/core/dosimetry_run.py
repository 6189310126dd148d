"""Main orchestration of an instrumented ring dosimetry run."""

from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional
import itertools
import math
import time
import torch

from .data_models import DoseReport, EventReport, PrimaryEmission, RunStatistics
from .dose_normalizer import DoseNormalizer, format_duration
from .event_tracker import EventTracker
from .region_catalog import GeometryParameters, RegionCatalog
from .run_accumulator import RunAccumulator
from .source_model import SourceModel
from .step_dispatcher import StepDispatcher, TransportEngine, VolumeNames
from ..physics.spectrum_database import SpectrumDatabase
from ..utils.config import SimulationConfig
from ..utils.logging import (
    DEFAULT_LOGGER_NAME,
    DiagnosticSink,
    attach_file_handler,
    detach_handler,
    get_logger,
    setup_logger,
)
from ..utils.validation import validate_config


DIAGNOSTIC_LOG_NAME = 'output.log'
RUN_LOG_NAME = 'simulation.log'


class DosimetryRun:
    """Coordinates source, tracker, accumulator and normalizer for one run.

    The transport engine is an external collaborator: for every event the
    run samples the primaries, opens the event on the tracker, hands the
    primaries to ``engine.transport`` together with the step dispatcher,
    and finalizes the event. Each event is finalized into a local report
    and merged into the run sums only once it validated; a failing event
    is logged, counted as discarded and the run carries on.

    Attributes:
        config: Simulation configuration
        engine: Transport engine
        catalog: Region catalog
        geometry: Layout parameters of filter, container and planes
        source: Particle source model
        tracker: Per-event tracker
        dispatcher: Step dispatcher handed to the engine
        accumulator: Run accumulator
        normalizer: Dose normalizer
        diagnostics: Diagnostic sink for early events
        logger: Run logger, a child of the package logger unique to this run
    """

    _run_ids = itertools.count()

    def __init__(
        self,
        config: SimulationConfig,
        engine: TransportEngine,
        catalog: Optional[RegionCatalog] = None,
        geometry: Optional[GeometryParameters] = None
    ):
        """Initialize DosimetryRun.

        Args:
            config: Simulation configuration
            engine: Transport engine driving the step callbacks
            catalog: Region catalog (default: built from the configuration)
            geometry: Geometry layout used for the run summary
        """
        validate_config(config)
        self.config = config
        self.engine = engine

        # Runs share the package console handler but own their loggers and files
        if not get_logger().handlers:
            setup_logger()
        self.logger_name = f"{DEFAULT_LOGGER_NAME}.run{next(DosimetryRun._run_ids)}"
        self.logger = get_logger(self.logger_name)

        self.catalog = catalog or RegionCatalog(
            n_regions=config.num_rings,
            ring_width_mm=config.ring_width_mm,
            thickness_mm=config.water_thickness_mm,
            density_g_cm3=config.water_density_g_cm3,
        )
        self.geometry = geometry or GeometryParameters()

        spectrum_db = SpectrumDatabase(config.spectrum_database_path)
        lines = spectrum_db.get_lines(config.spectrum_name)
        self.source = SourceModel(
            lines,
            cone_half_angle_rad=config.cone_half_angle_rad,
            seed=config.random_seed,
            device=config.device,
            line_match_tolerance_keV=config.line_match_tolerance_keV,
        )
        if config.random_seed is not None:
            self.logger.info(f"Random seed set to {config.random_seed}")

        diagnostics_logger = get_logger(f"{self.logger_name}.diagnostics")
        diagnostics_logger.propagate = config.output_format != 'file'
        self.diagnostics = DiagnosticSink(
            diagnostics_logger,
            max_events=config.diagnostic_max_events,
            enabled=config.diagnostic_max_events > 0,
        )
        self.tracker = EventTracker(
            self.catalog,
            transmission_tolerance=config.transmission_tolerance,
            tolerance_mode=config.tolerance_mode,
            n_lines=self.source.n_lines,
            diagnostics=self.diagnostics,
        )
        self.dispatcher = StepDispatcher(
            self.tracker,
            self.catalog,
            volume_names=VolumeNames.from_dict(config.volume_names),
            diagnostics=self.diagnostics,
        )

        mean_per_decay = config.mean_primaries_per_decay
        if mean_per_decay is None:
            mean_per_decay = self.source.mean_primaries_per_decay
        self.accumulator = RunAccumulator(
            n_regions=self.catalog.region_count(),
            n_lines=self.source.n_lines,
            source_activity_bq=config.source_activity_bq,
            cone_half_angle_rad=config.cone_half_angle_rad,
            mean_primaries_per_decay=mean_per_decay,
            device=config.device,
            region_labels=self.catalog.labels(),
        )
        self.normalizer = DoseNormalizer(self.catalog, config.reliability_threshold)

        self._abort_requested = False
        self.logger.info("DosimetryRun initialized")
        self.logger.info(
            f"Configuration: spectrum={config.spectrum_name}, events={config.num_events}, "
            f"activity={config.source_activity_bq:.4g} Bq, cone={config.cone_half_angle_deg} deg, "
            f"device={config.device}"
        )

    def abort(self) -> None:
        """Request cancellation; the run stops before the next event starts."""
        self._abort_requested = True

    def run(self, num_events: Optional[int] = None) -> Dict:
        """Process events sequentially and normalize the accumulated dose.

        Args:
            num_events: Number of events (default: ``config.num_events``)

        Returns:
            Dictionary with 'statistics', 'dose_report', 'event_records',
            'gamma_records', 'ring_dose_records', 'performance' and 'files'
        """
        if num_events is None:
            num_events = self.config.num_events

        run_log = None
        if self.config.output_format == 'file':
            run_log = attach_file_handler(
                self.logger, str(Path(self.config.output_path) / RUN_LOG_NAME)
            )
        try:
            return self._run_events(num_events)
        finally:
            detach_handler(self.logger, run_log)

    def _run_events(self, num_events: int) -> Dict:
        start_time = time.time()
        self._abort_requested = False
        self.accumulator.reset()
        event_records: List[Dict] = []
        gamma_records: List[Dict] = []
        ring_dose_records: List[Dict] = []

        if self.config.output_format == 'file':
            self.diagnostics.open_file(str(Path(self.config.output_path) / DIAGNOSTIC_LOG_NAME))

        self.logger.info("=" * 60)
        self.logger.info(f"Starting ring dosimetry run: {num_events} events")
        self.logger.info("=" * 60)

        processed = 0
        try:
            self.diagnostics.header(
                f"Diagnostics for the first {self.diagnostics.max_events} events"
            )
            for event_id in range(num_events):
                if self._abort_requested:
                    self.logger.warning(f"Run aborted after {processed} events")
                    break

                report = self.process_event(event_id)
                processed += 1
                if report is not None and self.config.record_events:
                    self._record_rows(report, event_records, gamma_records, ring_dose_records)
                self._log_progress(processed, num_events)
        finally:
            self.diagnostics.close_file()

        statistics = self.accumulator.statistics
        dose_report = self.normalizer.finalize(statistics)
        self._log_summary(statistics, dose_report)

        elapsed_time = time.time() - start_time
        results = {
            'statistics': statistics,
            'dose_report': dose_report,
            'event_records': event_records,
            'gamma_records': gamma_records,
            'ring_dose_records': ring_dose_records,
            'performance': {
                'total_time_seconds': elapsed_time,
                'events_processed': processed,
                'events_discarded': statistics.discarded_events,
                'events_per_second': processed / elapsed_time if elapsed_time > 0 else 0,
                'aborted': self._abort_requested,
            },
            'files': {},
        }

        if self.config.output_format == 'file':
            from ..output import ResultsWriter
            writer = ResultsWriter(self.config.output_path)
            results['files'] = writer.write(
                statistics,
                dose_report,
                event_records=event_records,
                gamma_records=gamma_records,
                ring_dose_records=ring_dose_records,
                metadata={'config': asdict(self.config), 'spectrum': self.config.spectrum_name},
            )
            results['files']['diagnostics'] = str(Path(self.config.output_path) / DIAGNOSTIC_LOG_NAME)

        self.logger.info("=" * 60)
        self.logger.info(f"Run complete in {elapsed_time:.2f} seconds")
        self.logger.info(f"Events/second: {results['performance']['events_per_second']:.2e}")
        self.logger.info("=" * 60)

        return results

    def process_event(
        self,
        event_id: int,
        primaries: Optional[List[PrimaryEmission]] = None
    ) -> Optional[EventReport]:
        """Transport one event and merge its report into the run sums.

        Primaries sampled outside the source model may be passed in; those
        without a line index are matched to the nearest spectrum line by
        energy.

        Args:
            event_id: Event id
            primaries: Primaries of the event (default: sampled from the source)

        Returns:
            The merged event report, or None when the event was discarded
        """
        if primaries is None:
            primaries = self.source.generate_event()
        else:
            for primary in primaries:
                if primary.line_index < 0:
                    primary.line_index = self.source.line_index_for_energy(primary.energy_keV)

        try:
            self.dispatcher.begin_event(event_id, primaries)
            self.engine.transport(event_id, primaries, self.dispatcher)
            report = self.dispatcher.end_event()
        except Exception as e:
            self.logger.error(f"Event {event_id} discarded: {e}")
            self.tracker.abort_event()
            self.accumulator.record_discarded()
            return None

        self.accumulator.ingest(report)
        return report

    @staticmethod
    def _record_rows(
        report: EventReport,
        event_records: List[Dict],
        gamma_records: List[Dict],
        ring_dose_records: List[Dict]
    ) -> None:
        event_records.append(report.to_record())
        gamma_records.extend(p.to_record(report.event_id) for p in report.primaries)
        if report.total_deposit_keV > 0:
            row = {'event_id': report.event_id}
            for index, deposit in enumerate(report.region_deposits_keV):
                row[f'ring_{index}_deposit_keV'] = deposit
            row['total_deposit_keV'] = report.total_deposit_keV
            ring_dose_records.append(row)

    def _log_progress(self, processed: int, total: int) -> None:
        step = max(total // 10, 1)
        if processed % step == 0:
            self.logger.info(f"Processed {processed}/{total} events")

    def _log_summary(self, stats: RunStatistics, report: DoseReport) -> None:
        log = self.logger.info
        n_events = stats.total_events

        log("=" * 60)
        log("Generation statistics")
        log(f"  Events processed: {n_events} (discarded: {stats.discarded_events})")
        log(f"  Primaries generated: {stats.total_primaries_generated}")
        log(f"  Mean gammas/event: {report.mean_primaries_per_event:.4f} "
            f"(expected {stats.mean_primaries_per_decay:.4f})")
        log(f"  Events without primaries: {stats.total_events_with_zero_primaries} "
            f"({report.zero_primary_fraction * 100:.2f}%)")

        log("Transmission through the filter")
        log(f"  Transmitted: {stats.total_transmitted} ({report.transmission_rate * 100:.2f}%)")
        log(f"  Absorbed: {stats.total_absorbed} ({report.absorption_rate * 100:.2f}%)")
        log(f"  Scattered: {stats.total_scattered}")
        log(f"  Absorbed with unresolved location: {stats.total_unresolved_absorptions}")
        log(f"  Unknown fates: {stats.total_unknown_fates}")
        log(f"  Secondaries at downstream plane: {stats.total_secondaries_downstream}")
        for k, line in enumerate(self.source.lines):
            generated = int(stats.line_generated[k].item())
            if generated == 0:
                continue
            transmitted = int(stats.line_transmitted[k].item())
            log(f"  {line.name:>10}: generated {generated}, "
                f"transmitted {transmitted} ({transmitted / generated * 100:.1f}%)")

        log("Verification counters")
        for name, value in stats.plane_counters.as_dict().items():
            log(f"  {name}: {value}")
        for name, value in stats.container_tally.as_dict().items():
            log(f"  {name}: {value}")

        log("Renormalization")
        log(f"  Cone half-angle: {math.degrees(stats.cone_half_angle_rad):.1f} deg, "
            f"solid angle {report.solid_angle_sr:.4f} sr (fraction {report.solid_angle_fraction:.6f})")
        log(f"  Equivalent 4pi decays: {report.equivalent_decays_4pi:.4g}")
        log(f"  Source activity: {stats.source_activity_bq:.4g} Bq")
        log(f"  Irradiation time: {report.irradiation_time_s:.6g} s ({format_duration(report.irradiation_time_s)})")
        log(f"  Filter: {self.geometry.filter_density_g_cm3:.3f} g/cm3, "
            f"{self.geometry.filter_mass_kg * 1000:.2f} g")

        log("Dose per ring")
        for region in report.regions:
            flag = '' if region.reliable or region.event_count == 0 else ' (unreliable)'
            log(f"  Ring {region.index} [{region.inner_radius_mm:g}-{region.outer_radius_mm:g} mm]: "
                f"E={region.energy_deposited_keV:.4g} keV, N={region.event_count}, "
                f"D={region.dose_gy:.4g} Gy, rate={region.dose_rate_ngy_per_h:.4g} nGy/h "
                f"+/- {region.relative_error * 100:.1f}%{flag}")
        log(f"  Total: mass={report.total_mass_kg * 1000:.3f} g, "
            f"rate={report.total_dose_rate_ngy_per_h:.4g} nGy/h "
            f"+/- {report.total_relative_error * 100:.1f}%")
        log("=" * 60)

        if self.config.device == 'cuda' and torch.cuda.is_available():
            self.logger.info(
                f"GPU Memory: {torch.cuda.max_memory_allocated() / 1024**2:.1f} MB peak allocated"
            )
