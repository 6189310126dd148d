"""Fixed-binning 1D histograms for run-level distributions."""

from typing import Dict, Iterable, Optional
import numpy as np


class Histogram1D:
    """Uniform-bin histogram with under/overflow counters.

    Attributes:
        name: Histogram key
        title: Axis/title description
        edges: Bin edges [n_bins + 1]
        counts: Bin contents [n_bins]
        underflow: Entries below the first edge
        overflow: Entries at or above the last edge
    """

    def __init__(self, name: str, title: str, n_bins: int, low: float, high: float):
        if n_bins < 1 or high <= low:
            raise ValueError(
                f"Invalid binning for histogram {name}: n_bins={n_bins}, range=[{low}, {high})"
            )
        self.name = name
        self.title = title
        self.low = float(low)
        self.high = float(high)
        self.edges = np.linspace(self.low, self.high, n_bins + 1)
        self.counts = np.zeros(n_bins, dtype=np.float64)
        self.underflow = 0.0
        self.overflow = 0.0
        self.entries = 0
        self._sum = 0.0

    @property
    def n_bins(self) -> int:
        return len(self.counts)

    def fill(self, value: float, weight: float = 1.0) -> None:
        self.fill_many([value], [weight])

    def fill_many(self, values: Iterable[float], weights: Optional[Iterable[float]] = None) -> None:
        """Fill a batch of values, optionally weighted (default weight 1)."""
        values = np.asarray(list(values), dtype=np.float64)
        if values.size == 0:
            return
        if weights is None:
            weights = np.ones_like(values)
        else:
            weights = np.asarray(list(weights), dtype=np.float64)
            if weights.shape != values.shape:
                raise ValueError(
                    f"Histogram {self.name}: {weights.size} weights for {values.size} values"
                )

        self.entries += values.size
        self._sum += float(np.sum(values * weights))

        below = values < self.low
        above = values >= self.high
        self.underflow += float(weights[below].sum())
        self.overflow += float(weights[above].sum())

        inside = ~(below | above)
        counts, _ = np.histogram(values[inside], bins=self.edges, weights=weights[inside])
        self.counts += counts

    def mean(self) -> float:
        return self._sum / self.entries if self.entries else 0.0

    def merge(self, other: 'Histogram1D') -> None:
        """Add another histogram with identical binning into this one."""
        if other.n_bins != self.n_bins or other.low != self.low or other.high != self.high:
            raise ValueError(f"Cannot merge histograms with different binning: {self.name}")
        self.counts += other.counts
        self.underflow += other.underflow
        self.overflow += other.overflow
        self.entries += other.entries
        self._sum += other._sum

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'title': self.title,
            'edges': self.edges.copy(),
            'counts': self.counts.copy(),
            'underflow': self.underflow,
            'overflow': self.overflow,
            'entries': self.entries,
            'mean': self.mean(),
        }


def standard_histograms(region_labels: Dict[int, str]) -> Dict[str, Histogram1D]:
    """Create the run histograms: multiplicity, spectrum and deposits.

    Args:
        region_labels: Ring index -> radial range label (e.g. 'r=0-5 mm')

    Returns:
        Dictionary of empty histograms keyed by name
    """
    histograms = {
        'n_primaries_per_event': Histogram1D(
            'n_primaries_per_event', 'Number of primary gammas per event;N;Counts',
            15, -0.5, 14.5
        ),
        'energy_spectrum': Histogram1D(
            'energy_spectrum', 'Energy spectrum of generated gammas;E (keV);Counts',
            1500, 0.0, 1500.0
        ),
        'total_energy_per_event': Histogram1D(
            'total_energy_per_event', 'Total primary energy per event;E_tot (keV);Counts',
            500, 0.0, 5000.0
        ),
    }
    for index, label in region_labels.items():
        name = f'ring_deposit_{index}'
        histograms[name] = Histogram1D(
            name, f'Energy deposit in ring {index} ({label});E (keV);Counts',
            200, 0.0, 200.0
        )
    histograms['total_water_deposit'] = Histogram1D(
        'total_water_deposit', 'Total energy deposit in water;E (keV);Counts',
        500, 0.0, 500.0
    )
    return histograms
