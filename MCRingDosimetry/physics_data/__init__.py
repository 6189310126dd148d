"""Physics data package containing bundled emission spectra.

Spectra are stored as JSON files under ``spectra/`` and ship with the
MCRingDosimetry package for immediate use.
"""

from pathlib import Path


def get_physics_data_dir() -> Path:
    """Get the physics data directory path.

    Returns:
        Path to the physics_data directory
    """
    return Path(__file__).parent


def get_spectrum_database_path(database_name: str = 'default.json') -> Path:
    """Get path to a spectrum database file.

    Args:
        database_name: Name of the database file (default: 'default.json')

    Returns:
        Path to the spectrum database file

    Raises:
        FileNotFoundError: If the database file doesn't exist
    """
    db_path = get_physics_data_dir() / 'spectra' / database_name
    if not db_path.exists():
        raise FileNotFoundError(
            f"Spectrum database not found: {db_path}\n"
            f"Available databases: {list_spectrum_databases()}"
        )
    return db_path


def list_spectrum_databases() -> list:
    """List all available spectrum databases.

    Returns:
        List of spectrum database filenames
    """
    spectra_dir = get_physics_data_dir() / 'spectra'
    if not spectra_dir.exists():
        return []
    return sorted(f.name for f in spectra_dir.glob('*.json'))


try:
    DEFAULT_SPECTRUM_DATABASE = str(get_spectrum_database_path())
except FileNotFoundError:
    DEFAULT_SPECTRUM_DATABASE = None


__all__ = [
    'get_physics_data_dir',
    'get_spectrum_database_path',
    'list_spectrum_databases',
    'DEFAULT_SPECTRUM_DATABASE',
]
