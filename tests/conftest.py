"""Shared fixtures: ring catalog, tracker and a scripted transport engine."""

from typing import Callable, List, Sequence

import pytest

from MCRingDosimetry.core.data_models import PrimaryEmission, StepRecord
from MCRingDosimetry.core.event_tracker import EventTracker
from MCRingDosimetry.core.region_catalog import RegionCatalog
from MCRingDosimetry.physics.spectrum_database import SpectrumLine


def make_primary(identity: int = 1, energy_keV: float = 121.78, line_index: int = -1) -> PrimaryEmission:
    return PrimaryEmission(
        identity=identity, energy_keV=energy_keV, theta=0.1, phi=0.0, line_index=line_index
    )


def make_step(event_id: int = 0, current: str = 'World', following: str = 'World', **kwargs) -> StepRecord:
    """Primary gamma step moving along +z unless overridden."""
    values = dict(
        event_id=event_id,
        current_volume=current,
        next_volume=following,
        track_id=1,
        parent_id=0,
        particle_name='gamma',
        pdg_code=22,
        kinetic_energy_keV=121.78,
        direction=(0.0, 0.0, 1.0),
    )
    values.update(kwargs)
    return StepRecord(**values)


class ScriptedEngine:
    """Transport engine replaying the steps returned by ``script``.

    ``script(event_id, primaries)`` returns the steps of the event; it may
    raise to emulate a transport failure.
    """

    def __init__(self, script: Callable[[int, Sequence[PrimaryEmission]], List[StepRecord]]):
        self.script = script
        self.transported_events: List[int] = []

    def transport(self, event_id, primaries, observer):
        self.transported_events.append(event_id)
        for step in self.script(event_id, primaries):
            observer.on_step(step)


def transmitted_script(event_id, primaries):
    """Every primary crosses both reference planes without energy loss."""
    steps = []
    for p in primaries:
        for plane in ('UpstreamDetector', 'DownstreamDetector'):
            steps.append(make_step(
                event_id, 'World', plane, track_id=p.identity, kinetic_energy_keV=p.energy_keV
            ))
    return steps


@pytest.fixture
def catalog() -> RegionCatalog:
    return RegionCatalog(n_regions=5, ring_width_mm=5.0, thickness_mm=5.0)


@pytest.fixture
def tracker(catalog: RegionCatalog) -> EventTracker:
    return EventTracker(catalog, transmission_tolerance=0.01, tolerance_mode='relative', n_lines=2)


@pytest.fixture
def two_lines() -> List[SpectrumLine]:
    """122 keV always emitted, 344 keV never."""
    return [SpectrumLine(121.78, 1.0), SpectrumLine(344.28, 0.0)]
