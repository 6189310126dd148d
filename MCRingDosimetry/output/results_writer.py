"""HDF5 and YAML export of run statistics, dose report and per-event rows."""

from pathlib import Path
from typing import Dict, Optional, Sequence, Union
import h5py
import numpy as np
import yaml

from ..core.data_models import DoseReport, RunStatistics
from ..utils.logging import get_logger


logger = get_logger()

RESULTS_FILENAME = 'dosimetry_results.h5'
SUMMARY_FILENAME = 'dose_report.yaml'

REGION_DOSE_COLUMNS = (
    'index', 'inner_radius_mm', 'outer_radius_mm', 'mass_kg', 'energy_deposited_keV',
    'event_count', 'dose_gy', 'dose_rate_gy_per_s', 'dose_rate_ngy_per_h',
    'relative_error', 'history_relative_error', 'reliable',
)


def _column(values: list) -> np.ndarray:
    if values and isinstance(values[0], str):
        return np.array(values, dtype=h5py.string_dtype())
    return np.asarray(values)


class ResultsWriter:
    """Writes the results of one run to an output directory.

    Layout of ``dosimetry_results.h5``:
        run_statistics/  scalar counters as attributes, per-ring and per-line datasets
        dose_report/     per-ring columns, normalization values as attributes
        histograms/<name>/  edges and counts
        events/, gammas/, ring_dose/  column datasets of the per-event rows

    A human readable ``dose_report.yaml`` summary is written next to it.

    Attributes:
        output_path: Output directory
    """

    def __init__(self, output_path: Union[str, Path]):
        self.output_path = Path(output_path)
        self.output_path.mkdir(parents=True, exist_ok=True)

    def write(
        self,
        statistics: RunStatistics,
        dose_report: DoseReport,
        event_records: Optional[Sequence[Dict]] = None,
        gamma_records: Optional[Sequence[Dict]] = None,
        ring_dose_records: Optional[Sequence[Dict]] = None,
        metadata: Optional[Dict] = None
    ) -> Dict[str, str]:
        """Write the HDF5 results file and the YAML summary.

        Args:
            statistics: Accumulated run statistics
            dose_report: Normalized dose report
            event_records: Flat per-event rows
            gamma_records: Flat per-primary rows
            ring_dose_records: Per-event ring deposit rows
            metadata: Extra run attributes (configuration, seed, ...)

        Returns:
            Dictionary of written file paths
        """
        h5_path = self.output_path / RESULTS_FILENAME
        with h5py.File(h5_path, 'w') as f:
            for key, value in (metadata or {}).items():
                if value is not None:
                    f.attrs[key] = value if not isinstance(value, dict) else yaml.safe_dump(value)

            self._write_statistics(f.create_group('run_statistics'), statistics)
            self._write_dose_report(f.create_group('dose_report'), dose_report)

            hist_group = f.create_group('histograms')
            for name, histogram in statistics.histograms.items():
                data = histogram.to_dict()
                group = hist_group.create_group(name)
                group.create_dataset('edges', data=data['edges'])
                group.create_dataset('counts', data=data['counts'])
                for key in ('title', 'underflow', 'overflow', 'entries', 'mean'):
                    group.attrs[key] = data[key]

            self._write_rows(f.create_group('events'), event_records or [])
            self._write_rows(f.create_group('gammas'), gamma_records or [])
            self._write_rows(f.create_group('ring_dose'), ring_dose_records or [])

        logger.info(f"Saved results: {h5_path}")

        summary_path = self.output_path / SUMMARY_FILENAME
        self.write_summary(summary_path, statistics, dose_report)

        return {'results': str(h5_path), 'summary': str(summary_path)}

    @staticmethod
    def _write_statistics(group: h5py.Group, stats: RunStatistics) -> None:
        for key, value in stats.scalar_summary().items():
            group.attrs[key] = value
        group.attrs['n_regions'] = stats.n_regions
        group.attrs['n_lines'] = stats.n_lines

        tensors = ('total_energy_keV', 'total_energy_squared_keV2', 'event_count_with_deposit',
                   'region_line_energy_keV') + RunStatistics.LINE_COUNTERS
        for name in tensors:
            group.create_dataset(name, data=getattr(stats, name).detach().cpu().numpy())

        counters = group.create_group('plane_counters')
        for key, value in stats.plane_counters.as_dict().items():
            counters.attrs[key] = value
        tally = group.create_group('container_tally')
        for key, value in stats.container_tally.as_dict().items():
            tally.attrs[key] = value

    @staticmethod
    def _write_dose_report(group: h5py.Group, report: DoseReport) -> None:
        data = report.to_dict()
        regions = data.pop('regions')
        for column in REGION_DOSE_COLUMNS:
            group.create_dataset(column, data=np.asarray([r[column] for r in regions]))
        for key, value in data.items():
            group.attrs[key] = value

    @staticmethod
    def _write_rows(group: h5py.Group, rows: Sequence[Dict]) -> None:
        group.attrs['n_rows'] = len(rows)
        if not rows:
            return
        for key in rows[0]:
            group.create_dataset(key, data=_column([row[key] for row in rows]))

    @staticmethod
    def write_summary(
        summary_path: Union[str, Path],
        statistics: RunStatistics,
        dose_report: DoseReport
    ) -> None:
        """Write the YAML run summary."""
        summary = {
            'run_statistics': statistics.scalar_summary(),
            'plane_counters': statistics.plane_counters.as_dict(),
            'container_tally': statistics.container_tally.as_dict(),
            'dose_report': dose_report.to_dict(),
        }
        with open(summary_path, 'w') as f:
            yaml.safe_dump(summary, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved summary: {summary_path}")


def load_results(path: Union[str, Path]) -> Dict:
    """Read a results file back into plain Python/NumPy objects.

    Args:
        path: Results directory or path to ``dosimetry_results.h5``

    Returns:
        Dictionary with 'run_statistics', 'dose_report', 'histograms',
        'events', 'gammas' and 'ring_dose' entries
    """
    path = Path(path)
    if path.is_dir():
        path = path / RESULTS_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Results file not found: {path}")

    def read_group(group: h5py.Group) -> Dict:
        content = {key: value for key, value in group.attrs.items()}
        for key, item in group.items():
            if isinstance(item, h5py.Dataset):
                data = item[()]
                if item.dtype.kind == 'O':
                    data = np.array([v.decode() if isinstance(v, bytes) else v for v in data])
                content[key] = data
            else:
                content[key] = read_group(item)
        return content

    with h5py.File(path, 'r') as f:
        results = {name: read_group(f[name]) for name in
                   ('run_statistics', 'dose_report', 'histograms', 'events', 'gammas', 'ring_dose')}
        results['metadata'] = dict(f.attrs.items())
    return results
