"""
Ring Dosimetry Instrumentation for Gamma Transport Simulations

Per-event provenance tracking of Eu-152 gammas through a filter and a
layered water target, run-wide accumulation of ring deposits, and
renormalization of cone-biased statistics into dose rates.
"""

__version__ = "0.1.0"

from .core.dosimetry_run import DosimetryRun
from .utils.config import SimulationConfig

__all__ = ['DosimetryRun', 'SimulationConfig']
