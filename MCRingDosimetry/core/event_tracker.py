"""Per-event identity tracking and fate classification of primary gammas."""

from typing import Dict, List, Optional, Sequence
import math

from .data_models import (
    ContainerPlaneTally,
    EventReport,
    PlaneCounters,
    PrimaryEmission,
    PrimaryFate,
    ReferencePlane,
    SecondaryParticle,
    TrackerState,
)
from .region_catalog import RegionCatalog
from ..physics.constants import PRIMARY_PARENT_ID
from ..utils.config import TOLERANCE_MODES
from ..utils.logging import DiagnosticSink, get_logger
from ..utils.validation import EventStateError, InvalidConfigurationError


logger = get_logger()

# Container plane counters and the energy field each one accumulates into
CONTAINER_TALLY_FIELDS = {
    'pre_photons': 'pre_photon_energy_keV',
    'post_photons_backward': 'post_photon_energy_backward_keV',
    'post_electrons_backward': 'post_electron_energy_backward_keV',
    'post_electrons_forward': 'post_electron_energy_forward_keV',
}

# Upper bound on parent hops when resolving a track to its primary
MAX_ANCESTRY_DEPTH = 10000


class EventTracker:
    """Collects step-level facts for one event and classifies each primary.

    Lifecycle is ``IDLE -> COLLECTING -> FINALIZED``. All per-event state
    (identity table, ancestry map, deposits, secondaries, counters) lives in
    an arena that is rebuilt by ``begin_event`` and never reused across
    events. Recording operations keyed by an identity that is not a primary
    of the current event are silent no-ops.

    Attributes:
        catalog: Region catalog used to validate ring indices
        transmission_tolerance: Allowed energy loss for a transmitted gamma
        tolerance_mode: 'relative' (fraction of the upstream energy) or 'absolute' (keV)
        n_lines: Number of spectrum lines for per-line deposit attribution
        diagnostics: Optional diagnostic sink for early events
    """

    def __init__(
        self,
        catalog: RegionCatalog,
        transmission_tolerance: float = 0.01,
        tolerance_mode: str = 'relative',
        n_lines: int = 0,
        diagnostics: Optional[DiagnosticSink] = None
    ):
        """Initialize EventTracker.

        Raises:
            InvalidConfigurationError: If the tolerance or its mode is invalid
        """
        if tolerance_mode not in TOLERANCE_MODES:
            raise InvalidConfigurationError(
                f"tolerance_mode must be one of {TOLERANCE_MODES}, got {tolerance_mode}"
            )
        if not math.isfinite(transmission_tolerance) or transmission_tolerance < 0:
            raise InvalidConfigurationError(
                f"transmission_tolerance must be non-negative, got {transmission_tolerance}"
            )
        if tolerance_mode == 'relative' and transmission_tolerance >= 1.0:
            raise InvalidConfigurationError(
                f"Relative transmission_tolerance must be below 1, got {transmission_tolerance}"
            )
        if n_lines < 0:
            raise InvalidConfigurationError(f"n_lines must be non-negative, got {n_lines}")

        self.catalog = catalog
        self.transmission_tolerance = float(transmission_tolerance)
        self.tolerance_mode = tolerance_mode
        self.n_lines = n_lines
        self.diagnostics = diagnostics

        self.state = TrackerState.IDLE
        self.event_id: Optional[int] = None
        self._reset_arena()

    def _reset_arena(self) -> None:
        n_regions = self.catalog.region_count()
        self._primaries: List[PrimaryEmission] = []
        self._index_by_identity: Dict[int, int] = {}
        self._parents: Dict[int, int] = {}
        self._deposits = [0.0] * n_regions
        self._line_deposits = [[0.0] * self.n_lines for _ in range(n_regions)]
        self._secondaries: List[SecondaryParticle] = []
        self._counters = PlaneCounters()
        self._container_tally = ContainerPlaneTally()

    def _require_collecting(self, operation: str) -> None:
        if self.state != TrackerState.COLLECTING:
            raise EventStateError(
                f"{operation} called while tracker is {self.state.value}; call begin_event first"
            )

    def _diag(self, tag: str, **fields) -> None:
        if self.diagnostics is not None and self.event_id is not None:
            self.diagnostics.record(tag, self.event_id, **fields)

    @property
    def primaries(self) -> List[PrimaryEmission]:
        return list(self._primaries)

    def primary(self, identity: int) -> Optional[PrimaryEmission]:
        """Primary registered under ``identity`` in the current event, if any."""
        index = self._index_by_identity.get(identity)
        return self._primaries[index] if index is not None else None

    def begin_event(self, event_id: int, primaries: Sequence[PrimaryEmission]) -> None:
        """Open a new event and register its primaries under identities 1..n.

        Args:
            event_id: Event id stamped on subsequent step callbacks
            primaries: Primary emissions generated for the event

        Raises:
            EventStateError: If the previous event is still collecting
        """
        if self.state == TrackerState.COLLECTING:
            raise EventStateError(
                f"begin_event({event_id}) called while event {self.event_id} is still collecting"
            )

        self._reset_arena()
        self.event_id = event_id
        for index, primary in enumerate(primaries):
            primary.identity = index + 1
            primary.reset_fate()
            self._primaries.append(primary)
            self._index_by_identity[primary.identity] = index
            self._parents[primary.identity] = PRIMARY_PARENT_ID
        self.state = TrackerState.COLLECTING

        if self.diagnostics is not None and self.diagnostics.wants(event_id):
            self.diagnostics.separator('-')
            self._diag('EVENT_START', n_primaries=len(self._primaries))
            for primary in self._primaries:
                self._diag(
                    'PRIMARY', identity=primary.identity, energy_keV=primary.energy_keV,
                    theta_deg=math.degrees(primary.theta), phi_deg=math.degrees(primary.phi)
                )

    def register_track(self, identity: int, parent_identity: int) -> None:
        """Remember the parent of a track so deposits map back to a primary."""
        self._require_collecting('register_track')
        if identity in self._index_by_identity:
            return
        self._parents.setdefault(identity, parent_identity)

    def resolve_primary(self, identity: int) -> Optional[PrimaryEmission]:
        """Follow the ancestry map from ``identity`` up to its primary."""
        current = identity
        for _ in range(MAX_ANCESTRY_DEPTH):
            index = self._index_by_identity.get(current)
            if index is not None:
                return self._primaries[index]
            parent = self._parents.get(current)
            if parent is None or parent == PRIMARY_PARENT_ID:
                return None
            current = parent
        return None

    def record_boundary_crossing(
        self,
        identity: int,
        plane: ReferencePlane,
        energy_keV: float
    ) -> None:
        """Record the energy of a primary at a reference plane (last write wins)."""
        self._require_collecting('record_boundary_crossing')
        primary = self.primary(identity)
        if primary is None:
            return

        plane = ReferencePlane(plane)
        if plane == ReferencePlane.UPSTREAM:
            primary.energy_upstream_keV = energy_keV
            primary.detected_upstream = True
        else:
            primary.energy_downstream_keV = energy_keV
            primary.detected_downstream = True
        self._diag(f'{plane.name}_CROSSING', identity=identity, energy_keV=energy_keV)

    def record_region_deposit(
        self,
        region_index: int,
        energy_keV: float,
        identity: Optional[int] = None
    ) -> None:
        """Add energy deposited in a ring during the current event.

        Args:
            region_index: Ring index
            energy_keV: Deposited energy in keV
            identity: Depositing track, used to attribute the energy to a line
        """
        self._require_collecting('record_region_deposit')
        if not self.catalog.is_valid_index(region_index):
            logger.warning(
                f"Event {self.event_id}: ignoring deposit of {energy_keV:.3f} keV "
                f"in unknown region {region_index}"
            )
            return
        if energy_keV <= 0:
            return

        self._deposits[region_index] += energy_keV
        if identity is not None and self.n_lines:
            primary = self.resolve_primary(identity)
            if primary is not None and 0 <= primary.line_index < self.n_lines:
                self._line_deposits[region_index][primary.line_index] += energy_keV

    def record_absorption(self, identity: int, location_tag: str) -> None:
        """Mark where a primary stopped; only used if it never reached downstream."""
        self._require_collecting('record_absorption')
        primary = self.primary(identity)
        if primary is None:
            return
        primary.absorption_tag = location_tag
        self._diag('ABSORPTION', identity=identity, location=location_tag)

    def record_filter_exit(self, identity: int) -> None:
        self._require_collecting('record_filter_exit')
        primary = self.primary(identity)
        if primary is not None:
            primary.exited_filter = True

    def record_water_entry(self, identity: int) -> None:
        self._require_collecting('record_water_entry')
        primary = self.primary(identity)
        if primary is not None:
            primary.entered_water = True

    def record_secondary(self, secondary: SecondaryParticle) -> None:
        self._require_collecting('record_secondary')
        self._secondaries.append(secondary)
        self._diag(
            'SECONDARY', identity=secondary.identity, parent=secondary.parent_identity,
            particle=secondary.particle_name, energy_keV=secondary.energy_keV,
            process=secondary.creator_process
        )

    def count(self, counter_name: str, amount: int = 1) -> None:
        """Increment a verification counter (see ``PlaneCounters``)."""
        self._require_collecting('count')
        self._counters.increment(counter_name, amount)

    def tally_container_plane(self, counter_name: str, energy_keV: float) -> None:
        """Count one particle at a container plane and add its energy.

        Args:
            counter_name: One of the keys of ``CONTAINER_TALLY_FIELDS``
            energy_keV: Kinetic energy at the crossing
        """
        self._require_collecting('tally_container_plane')
        energy_field = CONTAINER_TALLY_FIELDS.get(counter_name)
        if energy_field is None:
            raise KeyError(f"Unknown container plane counter: {counter_name}")
        tally = self._container_tally
        setattr(tally, counter_name, getattr(tally, counter_name) + 1)
        setattr(tally, energy_field, getattr(tally, energy_field) + energy_keV)

    def _is_transmitted(self, energy_up: float, energy_down: float) -> bool:
        if self.tolerance_mode == 'absolute':
            return energy_up - energy_down < self.transmission_tolerance
        if energy_up <= 0:
            return False
        return energy_down / energy_up > 1.0 - self.transmission_tolerance

    @staticmethod
    def _absorption_location(primary: PrimaryEmission) -> Optional[str]:
        # An explicit tag wins; otherwise derive from the filter/water flags
        tag = (primary.absorption_tag or '').lower()
        if 'filter' in tag:
            return 'filter'
        if 'water' in tag:
            return 'water'
        if not primary.exited_filter:
            return 'filter'
        if primary.entered_water:
            return 'water'
        return None

    def classify(self, primary: PrimaryEmission) -> PrimaryFate:
        """Resolve and store the fate of one primary from its recorded flags."""
        if primary.detected_upstream and primary.detected_downstream:
            primary.transmitted = self._is_transmitted(
                primary.energy_upstream_keV, primary.energy_downstream_keV
            )
            primary.fate = PrimaryFate.TRANSMITTED if primary.transmitted else PrimaryFate.SCATTERED
        elif not primary.detected_downstream:
            location = self._absorption_location(primary)
            if location == 'filter':
                primary.absorbed_in_filter = True
                primary.fate = PrimaryFate.ABSORBED_FILTER
            elif location == 'water':
                primary.absorbed_in_water = True
                primary.fate = PrimaryFate.ABSORBED_WATER
            else:
                primary.fate = PrimaryFate.ABSORBED_UNRESOLVED
        else:
            primary.fate = PrimaryFate.UNKNOWN
        return primary.fate

    def end_event(self) -> EventReport:
        """Classify every primary and hand the event over as a report.

        Returns:
            Validated event report

        Raises:
            EventStateError: If no event is collecting
            InconsistentEventError: If the finalized report is inconsistent
        """
        self._require_collecting('end_event')

        for primary in self._primaries:
            self.classify(primary)
            self._diag(
                'PRIMARY_FATE', identity=primary.identity, energy_keV=primary.energy_keV,
                fate=primary.fate.value,
                E_up=primary.energy_upstream_keV if primary.detected_upstream else 0.0,
                E_down=primary.energy_downstream_keV if primary.detected_downstream else 0.0
            )

        report = EventReport(
            event_id=self.event_id,
            primaries=list(self._primaries),
            region_deposits_keV=list(self._deposits),
            region_line_deposits_keV=[list(row) for row in self._line_deposits] if self.n_lines else [],
            secondaries=list(self._secondaries),
            plane_counters=self._counters,
            container_tally=self._container_tally,
        )
        self.state = TrackerState.FINALIZED

        if report.n_unresolved:
            logger.debug(
                f"Event {self.event_id}: {report.n_unresolved} absorbed primaries "
                f"with unresolved location"
            )
        if report.unknown_fates:
            logger.debug(f"Event {self.event_id}: {report.unknown_fates} primaries with unknown fate")

        self._diag(
            'EVENT_END', n_primaries=report.n_primaries, transmitted=report.n_transmitted,
            absorbed=report.n_absorbed, water_keV=report.total_deposit_keV
        )

        report.validate(self.catalog.region_count(), self.n_lines)
        return report

    def abort_event(self) -> None:
        """Drop the partial state of the current event."""
        if self.state == TrackerState.COLLECTING:
            logger.debug(f"Event {self.event_id} aborted, partial state discarded")
        self._reset_arena()
        self.state = TrackerState.IDLE
        self.event_id = None
