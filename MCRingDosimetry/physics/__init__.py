"""Emission spectra and physical constants."""

from .spectrum_database import SpectrumDatabase, SpectrumLine

__all__ = [
    'SpectrumDatabase',
    'SpectrumLine'
]
