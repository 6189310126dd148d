"""Utility modules for configuration, logging, and validation."""

from .config import SimulationConfig
from .logging import setup_logger, get_logger, DiagnosticSink
from .validation import (
    ValidationError,
    InvalidConfigurationError,
    InvalidSpectrumError,
    InvalidGeometryError,
    InconsistentEventError,
    EventStateError,
    validate_config
)

__all__ = [
    'SimulationConfig',
    'setup_logger',
    'get_logger',
    'DiagnosticSink',
    'ValidationError',
    'InvalidConfigurationError',
    'InvalidSpectrumError',
    'InvalidGeometryError',
    'InconsistentEventError',
    'EventStateError',
    'validate_config'
]
