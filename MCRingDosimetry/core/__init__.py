"""Core tracking, accumulation and normalization components."""

from .data_models import (
    ReferencePlane,
    PrimaryFate,
    TrackerState,
    Region,
    PrimaryEmission,
    SecondaryParticle,
    StepRecord,
    PlaneCounters,
    ContainerPlaneTally,
    EventReport,
    RunStatistics,
    RegionDose,
    DoseReport
)
from .histograms import Histogram1D, standard_histograms
from .region_catalog import RegionCatalog, GeometryParameters, mixture_density
from .source_model import SourceModel
from .event_tracker import EventTracker
from .step_dispatcher import (
    StepDispatcher,
    StepObserver,
    EventObserver,
    TransportEngine,
    VolumeNames
)
from .run_accumulator import RunAccumulator
from .dose_normalizer import DoseNormalizer
from .dosimetry_run import DosimetryRun

__all__ = [
    'ReferencePlane',
    'PrimaryFate',
    'TrackerState',
    'Region',
    'PrimaryEmission',
    'SecondaryParticle',
    'StepRecord',
    'PlaneCounters',
    'ContainerPlaneTally',
    'EventReport',
    'RunStatistics',
    'RegionDose',
    'DoseReport',
    'Histogram1D',
    'standard_histograms',
    'RegionCatalog',
    'GeometryParameters',
    'mixture_density',
    'SourceModel',
    'EventTracker',
    'StepDispatcher',
    'StepObserver',
    'EventObserver',
    'TransportEngine',
    'VolumeNames',
    'RunAccumulator',
    'DoseNormalizer',
    'DosimetryRun'
]
