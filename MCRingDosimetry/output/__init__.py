"""Result persistence for ring dosimetry runs."""

from .results_writer import ResultsWriter, load_results

__all__ = ['ResultsWriter', 'load_results']
