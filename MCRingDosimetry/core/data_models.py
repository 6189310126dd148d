"""Core data models for the ring dosimetry system."""

from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Tuple, Dict, List, Optional
import copy
import math
import torch

from .histograms import Histogram1D
from ..physics.constants import GAMMA_NAME, PRIMARY_PARENT_ID
from ..utils.validation import InconsistentEventError, validate_deposits


class ReferencePlane(str, Enum):
    """Thin counting surfaces bracketing the filter."""
    UPSTREAM = 'upstream'
    DOWNSTREAM = 'downstream'


class PrimaryFate(str, Enum):
    """Final classification of a primary gamma at event end."""
    PENDING = 'pending'
    TRANSMITTED = 'transmitted'
    SCATTERED = 'scattered'
    ABSORBED_FILTER = 'absorbed_filter'
    ABSORBED_WATER = 'absorbed_water'
    ABSORBED_UNRESOLVED = 'absorbed_unresolved'
    UNKNOWN = 'unknown'

    @property
    def is_absorbed(self) -> bool:
        return self in (
            PrimaryFate.ABSORBED_FILTER,
            PrimaryFate.ABSORBED_WATER,
            PrimaryFate.ABSORBED_UNRESOLVED,
        )


class TrackerState(Enum):
    IDLE = 'idle'
    COLLECTING = 'collecting'
    FINALIZED = 'finalized'


@dataclass(frozen=True)
class Region:
    """Concentric annular sub-volume of the water layer.

    Attributes:
        index: Ring index (0 is the central disc)
        name: Transport volume name of the ring
        inner_radius_mm: Inner radius in mm
        outer_radius_mm: Outer radius in mm
        thickness_mm: Axial thickness in mm
        mass_kg: Water mass in kg
    """
    index: int
    name: str
    inner_radius_mm: float
    outer_radius_mm: float
    thickness_mm: float
    mass_kg: float

    @property
    def label(self) -> str:
        return f"r={self.inner_radius_mm:g}-{self.outer_radius_mm:g} mm"


@dataclass
class PrimaryEmission:
    """One source gamma and its fate bookkeeping for the owning event.

    Energies observed at a reference plane are only meaningful once the
    matching ``detected_*`` flag is set.

    Attributes:
        identity: Track identity within the event (1..n)
        energy_keV: Initial kinetic energy in keV
        theta: Polar emission angle in radians
        phi: Azimuthal emission angle in radians
        line_index: Index of the emitting spectrum line (-1 if unknown)
        energy_upstream_keV: Energy at the upstream plane
        energy_downstream_keV: Energy at the downstream plane
        absorption_tag: Explicit absorption location ('filter' or 'water')
        fate: Classification resolved at event end
    """
    identity: int
    energy_keV: float
    theta: float
    phi: float
    line_index: int = -1
    energy_upstream_keV: Optional[float] = None
    energy_downstream_keV: Optional[float] = None
    detected_upstream: bool = False
    detected_downstream: bool = False
    transmitted: bool = False
    absorbed_in_filter: bool = False
    absorbed_in_water: bool = False
    exited_filter: bool = False
    entered_water: bool = False
    absorption_tag: Optional[str] = None
    fate: PrimaryFate = PrimaryFate.PENDING

    def direction(self) -> Tuple[float, float, float]:
        sin_theta = math.sin(self.theta)
        return (
            sin_theta * math.cos(self.phi),
            sin_theta * math.sin(self.phi),
            math.cos(self.theta),
        )

    def reset_fate(self) -> None:
        """Clear everything observed during transport."""
        self.energy_upstream_keV = None
        self.energy_downstream_keV = None
        self.detected_upstream = False
        self.detected_downstream = False
        self.transmitted = False
        self.absorbed_in_filter = False
        self.absorbed_in_water = False
        self.exited_filter = False
        self.entered_water = False
        self.absorption_tag = None
        self.fate = PrimaryFate.PENDING

    def to_record(self, event_id: int) -> Dict:
        """Flat per-primary row."""
        return {
            'event_id': event_id,
            'identity': self.identity,
            'line_index': self.line_index,
            'energy_initial_keV': self.energy_keV,
            'energy_upstream_keV': self.energy_upstream_keV if self.detected_upstream else 0.0,
            'energy_downstream_keV': self.energy_downstream_keV if self.detected_downstream else 0.0,
            'theta': self.theta,
            'phi': self.phi,
            'detected_upstream': int(self.detected_upstream),
            'detected_downstream': int(self.detected_downstream),
            'transmitted': int(self.transmitted),
            'fate': self.fate.value,
        }


@dataclass
class SecondaryParticle:
    """Non-primary particle crossing the downstream plane.

    Attributes:
        identity: Track identity
        parent_identity: Identity of the parent track
        pdg_code: PDG particle code
        particle_name: Transport particle name
        energy_keV: Kinetic energy at the crossing
        creator_process: Name of the creating process
    """
    identity: int
    parent_identity: int
    pdg_code: int
    particle_name: str
    energy_keV: float
    creator_process: str = 'Unknown'


@dataclass
class StepRecord:
    """One transport step as reported by the external engine.

    Attributes:
        event_id: Event the step belongs to
        current_volume: Volume at the pre-step point
        next_volume: Volume at the post-step point ('OutOfWorld' when leaving)
        track_id: Track identity
        parent_id: Parent track identity (0 for source particles)
        particle_name: Particle name (e.g. 'gamma', 'e-')
        pdg_code: PDG particle code
        kinetic_energy_keV: Kinetic energy at the pre-step point
        energy_deposit_keV: Energy deposited during the step
        position_mm: Pre-step position (x, y, z)
        direction: Momentum direction (ux, uy, uz)
        post_kinetic_energy_keV: Kinetic energy at the post-step point, if known
        track_killed: True when the track stops during this step
        creator_process: Process that created the track
    """
    event_id: int
    current_volume: str
    next_volume: str
    track_id: int
    parent_id: int
    particle_name: str
    kinetic_energy_keV: float
    energy_deposit_keV: float = 0.0
    pdg_code: int = 0
    position_mm: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    post_kinetic_energy_keV: Optional[float] = None
    track_killed: bool = False
    creator_process: Optional[str] = None

    @property
    def is_primary(self) -> bool:
        return self.parent_id == PRIMARY_PARENT_ID

    @property
    def is_gamma(self) -> bool:
        return self.particle_name == GAMMA_NAME

    @property
    def moving_forward(self) -> bool:
        return self.direction[2] > 0

    @property
    def radius_mm(self) -> float:
        x, y, _ = self.position_mm
        return math.hypot(x, y)


@dataclass
class PlaneCounters:
    """Verification counters for volume entries and counting planes."""
    filter_entries: int = 0
    filter_exits: int = 0
    container_entries: int = 0
    water_entries: int = 0
    electrons_in_water: int = 0
    pre_filter_plane: int = 0
    post_filter_plane: int = 0
    pre_water_plane: int = 0
    post_water_plane: int = 0

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self.field_names():
            raise KeyError(f"Unknown plane counter: {name}")
        setattr(self, name, getattr(self, name) + amount)

    def add(self, other: 'PlaneCounters') -> None:
        for name in self.field_names():
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


@dataclass
class ContainerPlaneTally:
    """Photon and electron flow through the planes bracketing the container."""
    pre_photons: int = 0
    pre_photon_energy_keV: float = 0.0
    post_photons_backward: int = 0
    post_photon_energy_backward_keV: float = 0.0
    post_electrons_backward: int = 0
    post_electron_energy_backward_keV: float = 0.0
    post_electrons_forward: int = 0
    post_electron_energy_forward_keV: float = 0.0

    def add(self, other: 'ContainerPlaneTally') -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class EventReport:
    """Finalized outcome of one event, handed to the run accumulator.

    Attributes:
        event_id: Event id
        primaries: Finalized primary emissions
        region_deposits_keV: Energy deposited per ring [N]
        region_line_deposits_keV: Deposit per ring attributed to each line [N][K]
        secondaries: Secondaries crossing the downstream plane
        plane_counters: Verification counters of the event
        container_tally: Container plane flow of the event
    """
    event_id: int
    primaries: List[PrimaryEmission]
    region_deposits_keV: List[float]
    region_line_deposits_keV: List[List[float]] = field(default_factory=list)
    secondaries: List[SecondaryParticle] = field(default_factory=list)
    plane_counters: PlaneCounters = field(default_factory=PlaneCounters)
    container_tally: ContainerPlaneTally = field(default_factory=ContainerPlaneTally)

    @property
    def n_primaries(self) -> int:
        return len(self.primaries)

    def count_fate(self, fate: PrimaryFate) -> int:
        return sum(1 for p in self.primaries if p.fate == fate)

    @property
    def n_transmitted(self) -> int:
        return sum(1 for p in self.primaries if p.transmitted)

    @property
    def n_absorbed(self) -> int:
        return sum(1 for p in self.primaries if p.fate.is_absorbed)

    @property
    def n_scattered(self) -> int:
        return self.count_fate(PrimaryFate.SCATTERED)

    @property
    def n_unresolved(self) -> int:
        return self.count_fate(PrimaryFate.ABSORBED_UNRESOLVED)

    @property
    def unknown_fates(self) -> int:
        return self.count_fate(PrimaryFate.UNKNOWN)

    @property
    def total_primary_energy_keV(self) -> float:
        return sum(p.energy_keV for p in self.primaries)

    @property
    def total_deposit_keV(self) -> float:
        return sum(self.region_deposits_keV)

    def validate(self, n_regions: int, n_lines: int) -> None:
        """Check internal consistency before the report is merged.

        Raises:
            InconsistentEventError: If the report cannot be trusted
        """
        validate_deposits(self.region_deposits_keV, n_regions)
        if self.region_line_deposits_keV:
            if len(self.region_line_deposits_keV) != n_regions:
                raise InconsistentEventError(
                    f"Event {self.event_id}: line deposits cover "
                    f"{len(self.region_line_deposits_keV)} regions, expected {n_regions}"
                )
            for row in self.region_line_deposits_keV:
                validate_deposits(row, n_lines)
        identities = [p.identity for p in self.primaries]
        if len(set(identities)) != len(identities):
            raise InconsistentEventError(f"Event {self.event_id}: duplicate primary identities")
        for primary in self.primaries:
            if primary.fate == PrimaryFate.PENDING:
                raise InconsistentEventError(
                    f"Event {self.event_id}: primary {primary.identity} was never classified"
                )
            if n_lines and primary.line_index != -1 and not 0 <= primary.line_index < n_lines:
                raise InconsistentEventError(
                    f"Event {self.event_id}: line index {primary.line_index} out of range"
                )

    def to_record(self) -> Dict:
        """Flat per-event row for row-oriented persistence."""
        record = {
            'event_id': self.event_id,
            'n_primaries': self.n_primaries,
            'total_energy_keV': self.total_primary_energy_keV,
            'n_transmitted': self.n_transmitted,
            'n_absorbed': self.n_absorbed,
            'n_scattered': self.n_scattered,
            'n_secondaries': len(self.secondaries),
            'total_water_deposit_keV': self.total_deposit_keV,
        }
        for index, deposit in enumerate(self.region_deposits_keV):
            record[f'ring_{index}_deposit_keV'] = deposit
        return record


@dataclass
class RunStatistics:
    """Run-scoped accumulated sums.

    Per-region and per-line sums are float64/int64 tensors so partial
    accumulators from several workers can be reduced by addition.
    """
    n_regions: int
    n_lines: int
    total_energy_keV: torch.Tensor
    total_energy_squared_keV2: torch.Tensor
    event_count_with_deposit: torch.Tensor
    region_line_energy_keV: torch.Tensor
    line_generated: torch.Tensor
    line_transmitted: torch.Tensor
    line_exited_filter: torch.Tensor
    line_absorbed_in_filter: torch.Tensor
    line_entered_water: torch.Tensor
    line_absorbed_in_water: torch.Tensor
    source_activity_bq: float = 0.0
    cone_half_angle_rad: float = 0.0
    mean_primaries_per_decay: float = 0.0
    total_primaries_generated: int = 0
    total_events_with_zero_primaries: int = 0
    total_transmitted: int = 0
    total_absorbed: int = 0
    total_scattered: int = 0
    total_unresolved_absorptions: int = 0
    total_unknown_fates: int = 0
    total_secondaries_downstream: int = 0
    total_events: int = 0
    total_water_energy_keV: float = 0.0
    total_water_event_count: int = 0
    discarded_events: int = 0
    plane_counters: PlaneCounters = field(default_factory=PlaneCounters)
    container_tally: ContainerPlaneTally = field(default_factory=ContainerPlaneTally)
    histograms: Dict[str, Histogram1D] = field(default_factory=dict)

    LINE_COUNTERS = (
        'line_generated', 'line_transmitted', 'line_exited_filter',
        'line_absorbed_in_filter', 'line_entered_water', 'line_absorbed_in_water',
    )
    SCALAR_COUNTERS = (
        'total_primaries_generated', 'total_events_with_zero_primaries',
        'total_transmitted', 'total_absorbed', 'total_scattered',
        'total_unresolved_absorptions', 'total_unknown_fates',
        'total_secondaries_downstream', 'total_events', 'total_water_energy_keV',
        'total_water_event_count', 'discarded_events',
    )

    @classmethod
    def create_empty(
        cls,
        n_regions: int,
        n_lines: int = 0,
        source_activity_bq: float = 0.0,
        cone_half_angle_rad: float = 0.0,
        mean_primaries_per_decay: float = 0.0,
        histograms: Optional[Dict[str, Histogram1D]] = None,
        device: str = 'cpu'
    ) -> 'RunStatistics':
        """Create zeroed statistics with pre-allocated tensors."""
        def counts(*shape):
            return torch.zeros(shape, dtype=torch.int64, device=device)

        def sums(*shape):
            return torch.zeros(shape, dtype=torch.float64, device=device)

        return cls(
            n_regions=n_regions,
            n_lines=n_lines,
            total_energy_keV=sums(n_regions),
            total_energy_squared_keV2=sums(n_regions),
            event_count_with_deposit=counts(n_regions),
            region_line_energy_keV=sums(n_regions, n_lines),
            line_generated=counts(n_lines),
            line_transmitted=counts(n_lines),
            line_exited_filter=counts(n_lines),
            line_absorbed_in_filter=counts(n_lines),
            line_entered_water=counts(n_lines),
            line_absorbed_in_water=counts(n_lines),
            source_activity_bq=source_activity_bq,
            cone_half_angle_rad=cone_half_angle_rad,
            mean_primaries_per_decay=mean_primaries_per_decay,
            histograms=histograms or {},
        )

    def merge(self, other: 'RunStatistics') -> None:
        """Add another partial accumulation into this one (in place)."""
        if other.n_regions != self.n_regions or other.n_lines != self.n_lines:
            raise ValueError(
                f"Cannot merge statistics of shape ({other.n_regions}, {other.n_lines}) "
                f"into ({self.n_regions}, {self.n_lines})"
            )
        for name in ('total_energy_keV', 'total_energy_squared_keV2',
                     'event_count_with_deposit', 'region_line_energy_keV') + self.LINE_COUNTERS:
            getattr(self, name).add_(getattr(other, name).to(getattr(self, name).device))
        for name in self.SCALAR_COUNTERS:
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.plane_counters.add(other.plane_counters)
        self.container_tally.add(other.container_tally)
        for name, histogram in other.histograms.items():
            if name in self.histograms:
                self.histograms[name].merge(histogram)
            else:
                self.histograms[name] = copy.deepcopy(histogram)

    def scalar_summary(self) -> Dict[str, float]:
        summary = {name: getattr(self, name) for name in self.SCALAR_COUNTERS}
        summary.update({
            'source_activity_bq': self.source_activity_bq,
            'cone_half_angle_rad': self.cone_half_angle_rad,
            'mean_primaries_per_decay': self.mean_primaries_per_decay,
        })
        return summary


@dataclass
class RegionDose:
    """Normalized dose figures for one ring."""
    index: int
    inner_radius_mm: float
    outer_radius_mm: float
    mass_kg: float
    energy_deposited_keV: float
    event_count: int
    dose_gy: float
    dose_rate_gy_per_s: float
    dose_rate_ngy_per_h: float
    relative_error: float
    history_relative_error: float
    reliable: bool


@dataclass
class DoseReport:
    """Dose-rate report produced by the dose normalizer."""
    regions: List[RegionDose]
    n_events: int
    solid_angle_fraction: float
    solid_angle_sr: float
    equivalent_decays_4pi: float
    irradiation_time_s: float
    total_mass_kg: float
    total_energy_keV: float
    mean_dose_gy: float
    total_dose_rate_gy_per_s: float
    total_dose_rate_ngy_per_h: float
    total_relative_error: float
    mean_primaries_per_event: float = 0.0
    zero_primary_fraction: float = 0.0
    transmission_rate: float = 0.0
    absorption_rate: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)
