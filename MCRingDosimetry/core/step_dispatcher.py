"""Observer contracts and the adapter translating transport steps into tracker records."""

from dataclasses import dataclass, fields
from typing import Optional, Protocol, Sequence

from .data_models import EventReport, PrimaryEmission, ReferencePlane, SecondaryParticle, StepRecord
from .event_tracker import EventTracker
from .region_catalog import RegionCatalog, strip_logical_suffix
from ..physics.constants import ELECTRON_NAME, GAMMA_NAME
from ..utils.logging import DiagnosticSink, get_logger


logger = get_logger()


class StepObserver(Protocol):
    """Receives every transport step of the current event."""

    def on_step(self, step: StepRecord) -> None:
        ...


class EventObserver(Protocol):
    """Receives event boundaries."""

    def begin_event(self, event_id: int, primaries: Sequence[PrimaryEmission]) -> None:
        ...

    def end_event(self) -> EventReport:
        ...


class TransportEngine(Protocol):
    """External particle-transport engine.

    ``transport`` propagates the given primaries through the geometry and
    reports every step, in order, to ``observer.on_step``.
    """

    def transport(
        self,
        event_id: int,
        primaries: Sequence[PrimaryEmission],
        observer: StepObserver
    ) -> None:
        ...


@dataclass
class VolumeNames:
    """Physical volume names of the layered geometry.

    Attributes:
        filter: Attenuating filter
        container_wall: Side wall of the water container
        container_top: Top plate of the water container
        upstream_detector: Reference plane in front of the filter
        downstream_detector: Reference plane behind the filter
        pre_filter_plane: Counting plane before the filter
        post_filter_plane: Counting plane after the filter
        pre_water_plane: Counting plane before the water
        post_water_plane: Counting plane after the water
        pre_container_plane: Plane just before the water container
        post_container_plane: Plane just after the water container
    """
    filter: str = 'Filter'
    container_wall: str = 'ContainerWall'
    container_top: str = 'ContainerTop'
    upstream_detector: str = 'UpstreamDetector'
    downstream_detector: str = 'DownstreamDetector'
    pre_filter_plane: str = 'PreFilterPlane'
    post_filter_plane: str = 'PostFilterPlane'
    pre_water_plane: str = 'PreWaterPlane'
    post_water_plane: str = 'PostWaterPlane'
    pre_container_plane: str = 'PreContainerPlane'
    post_container_plane: str = 'PostContainerPlane'

    @classmethod
    def from_dict(cls, overrides: dict) -> 'VolumeNames':
        """Build from a (possibly partial) mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise KeyError(f"Unknown volume name keys: {sorted(unknown)}")
        return cls(**overrides)


class StepDispatcher:
    """Turns raw transport steps into recording operations on the tracker.

    Volume names are compared with the logical ``Log`` suffix stripped, so
    engines reporting either physical or logical names are accepted. Steps
    stamped with an event id other than the tracker's current event are
    ignored.

    Attributes:
        tracker: Event tracker receiving the records
        catalog: Region catalog mapping ring volume names to indices
        volume_names: Names of the non-ring volumes
        diagnostics: Optional diagnostic sink
    """

    def __init__(
        self,
        tracker: EventTracker,
        catalog: RegionCatalog,
        volume_names: Optional[VolumeNames] = None,
        diagnostics: Optional[DiagnosticSink] = None
    ):
        self.tracker = tracker
        self.catalog = catalog
        self.volume_names = volume_names or VolumeNames()
        self.diagnostics = diagnostics
        self.ignored_steps = 0

        names = self.volume_names
        self._container_volumes = {names.container_wall, names.container_top}
        self._counting_planes = {
            names.pre_filter_plane: 'pre_filter_plane',
            names.post_filter_plane: 'post_filter_plane',
            names.pre_water_plane: 'pre_water_plane',
            names.post_water_plane: 'post_water_plane',
        }

    # EventObserver

    def begin_event(self, event_id: int, primaries: Sequence[PrimaryEmission]) -> None:
        self.tracker.begin_event(event_id, primaries)

    def end_event(self) -> EventReport:
        return self.tracker.end_event()

    # StepObserver

    def on_step(self, step: StepRecord) -> None:
        """Dispatch one transport step.

        Args:
            step: Step reported by the transport engine
        """
        if step.event_id != self.tracker.event_id:
            self.ignored_steps += 1
            logger.debug(
                f"Ignoring step of event {step.event_id} while tracking event {self.tracker.event_id}"
            )
            return

        tracker = self.tracker
        names = self.volume_names
        current = strip_logical_suffix(step.current_volume)
        following = strip_logical_suffix(step.next_volume)
        primary_gamma = step.is_primary and step.is_gamma

        tracker.register_track(step.track_id, step.parent_id)

        if primary_gamma and step.track_killed:
            tracker.record_absorption(step.track_id, current)

        ring_index = self.catalog.index_for_volume(current)
        if ring_index is not None and step.energy_deposit_keV > 0:
            tracker.record_region_deposit(ring_index, step.energy_deposit_keV, step.track_id)
            self._diag(
                'WATER_DEPOSIT', step, ring=ring_index, particle=step.particle_name,
                E_kin_keV=step.kinetic_energy_keV, r_mm=step.radius_mm, z_mm=step.position_mm[2]
            )

        if current == following:
            return

        if primary_gamma:
            if following == names.filter:
                tracker.count('filter_entries')
                self._diag('FILTER_ENTRY', step, trackID=step.track_id, E_keV=step.kinetic_energy_keV)
            if current == names.filter:
                tracker.count('filter_exits')
                tracker.record_filter_exit(step.track_id)
                exit_energy = step.post_kinetic_energy_keV
                if exit_energy is None:
                    exit_energy = step.kinetic_energy_keV
                self._diag('FILTER_EXIT', step, trackID=step.track_id, E_keV=exit_energy)
            if following in self._container_volumes and current not in self._container_volumes:
                tracker.count('container_entries')
                self._diag('CONTAINER_ENTRY', step, trackID=step.track_id, E_keV=step.kinetic_energy_keV)

        entering_water = (
            self.catalog.index_for_volume(following) is not None and ring_index is None
        )
        if entering_water:
            if step.is_gamma:
                tracker.count('water_entries')
                if step.is_primary:
                    tracker.record_water_entry(step.track_id)
            elif step.particle_name == ELECTRON_NAME:
                tracker.count('electrons_in_water')
            self._diag(
                'WATER_ENTRY', step, particle=step.particle_name, trackID=step.track_id,
                parentID=step.parent_id, E_keV=step.kinetic_energy_keV, volume=following
            )

        counter = self._counting_planes.get(following)
        if counter is not None and step.is_gamma and step.moving_forward:
            tracker.count(counter)

        if following == names.pre_container_plane:
            if step.is_gamma and step.moving_forward:
                tracker.tally_container_plane('pre_photons', step.kinetic_energy_keV)
        elif following == names.post_container_plane:
            self._tally_post_container(step)

        if following == names.upstream_detector and step.moving_forward and primary_gamma:
            tracker.record_boundary_crossing(
                step.track_id, ReferencePlane.UPSTREAM, step.kinetic_energy_keV
            )
        elif following == names.downstream_detector and step.moving_forward:
            if primary_gamma:
                tracker.record_boundary_crossing(
                    step.track_id, ReferencePlane.DOWNSTREAM, step.kinetic_energy_keV
                )
            else:
                tracker.record_secondary(SecondaryParticle(
                    identity=step.track_id,
                    parent_identity=step.parent_id,
                    pdg_code=step.pdg_code,
                    particle_name=step.particle_name,
                    energy_keV=step.kinetic_energy_keV,
                    creator_process=step.creator_process or 'Unknown',
                ))

    def _tally_post_container(self, step: StepRecord) -> None:
        uz = step.direction[2]
        if step.particle_name == GAMMA_NAME and uz < 0:
            self.tracker.tally_container_plane('post_photons_backward', step.kinetic_energy_keV)
        elif step.particle_name == ELECTRON_NAME and uz < 0:
            self.tracker.tally_container_plane('post_electrons_backward', step.kinetic_energy_keV)
        elif step.particle_name == ELECTRON_NAME and uz > 0:
            self.tracker.tally_container_plane('post_electrons_forward', step.kinetic_energy_keV)

    def _diag(self, tag: str, step: StepRecord, **payload) -> None:
        if self.diagnostics is not None and self.diagnostics.wants(step.event_id):
            self.diagnostics.record(tag, step.event_id, **payload)
