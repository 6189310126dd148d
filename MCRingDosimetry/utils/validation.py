"""Validation utilities and error types for configuration and event data."""

import math
from pathlib import Path
from typing import Iterable, TYPE_CHECKING

from .logging import get_logger

if TYPE_CHECKING:
    from .config import SimulationConfig


logger = get_logger()


class ValidationError(Exception):
    """Base exception for validation errors."""
    pass


class InvalidConfigurationError(ValidationError):
    """Raised when configuration parameters are invalid."""
    pass


class InvalidSpectrumError(ValidationError):
    """Raised when an emission spectrum is malformed."""
    pass


class InvalidGeometryError(ValidationError):
    """Raised when a geometry dimension or density is non-physical."""
    pass


class InconsistentEventError(ValidationError):
    """Raised when a finalized event report fails its consistency checks."""
    pass


class EventStateError(RuntimeError):
    """Raised when the event tracker is driven out of order."""
    pass


def validate_probability(value: float, label: str) -> None:
    """Check that an emission probability lies in [0, 1].

    Raises:
        InvalidSpectrumError: If the value is out of range or not finite
    """
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise InvalidSpectrumError(
            f"Emission probability for {label} must be in [0, 1], got {value}"
        )


def validate_positive(value: float, label: str) -> None:
    """Check that a geometry dimension or density is strictly positive.

    Raises:
        InvalidGeometryError: If the value is not positive
    """
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidGeometryError(f"{label} must be positive, got {value}")


def validate_deposits(deposits: Iterable[float], expected_length: int) -> None:
    """Check a per-region deposit vector of a finalized event.

    Raises:
        InconsistentEventError: On length mismatch, negative or non-finite entries
    """
    values = list(deposits)
    if len(values) != expected_length:
        raise InconsistentEventError(
            f"Expected {expected_length} region deposits, got {len(values)}"
        )
    for index, value in enumerate(values):
        if not math.isfinite(value) or value < 0.0:
            raise InconsistentEventError(
                f"Invalid deposit {value} keV in region {index}"
            )


def validate_config(config: 'SimulationConfig') -> None:
    """Validate simulation configuration.

    Args:
        config: Simulation configuration

    Raises:
        InvalidConfigurationError: If configuration is invalid
    """
    try:
        # Field-level validation happens in __post_init__
        if config.spectrum_database_path:
            db_path = Path(config.spectrum_database_path)
            if not db_path.exists():
                raise InvalidConfigurationError(
                    f"Spectrum database not found: {config.spectrum_database_path}"
                )

        if config.device == 'cuda':
            import torch
            if not torch.cuda.is_available():
                raise InvalidConfigurationError(
                    "CUDA device requested but CUDA is not available. "
                    "Set device='cpu' or install CUDA support."
                )

        if config.source_activity_bq == 0.0:
            logger.warning(
                "Source activity is zero: dose rates will be reported as zero"
            )

        logger.debug("Configuration validation passed")

    except InvalidConfigurationError:
        raise
    except Exception as e:
        raise InvalidConfigurationError(f"Configuration validation failed: {str(e)}") from e
