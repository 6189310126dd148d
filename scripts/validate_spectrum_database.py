#!/usr/bin/env python3
"""Validate the bundled emission spectrum database."""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from MCRingDosimetry.physics import SpectrumDatabase
from MCRingDosimetry.physics_data import DEFAULT_SPECTRUM_DATABASE
from MCRingDosimetry.utils.validation import ValidationError


# Total gamma intensity of Eu-152 in the reference configuration
EXPECTED_EMISSIONS = {'Eu-152': 1.924}


def validate_spectrum_database(db_path: str) -> bool:
    """Load every spectrum and report its lines and emission yield."""
    print("=" * 60)
    print("Validating Spectrum Database")
    print("=" * 60)
    print(f"Loading: {db_path}")

    try:
        db = SpectrumDatabase(db_path)
    except (FileNotFoundError, ValidationError) as e:
        print(f"\n✗ Spectrum database validation FAILED: {e}")
        return False

    passed = True
    for name in sorted(db.spectra):
        lines = db.get_lines(name)
        mean = db.mean_emissions_per_decay(name)
        print(f"\n✓ {name}: {len(lines)} lines, {mean:.4f} gammas/decay")
        for line in lines:
            print(f"    {line.energy_keV:9.2f} keV  p={line.probability:.4f}")

        expected = EXPECTED_EMISSIONS.get(name)
        if expected is not None and abs(mean - expected) > 1e-3:
            print(f"  ✗ expected {expected:.4f} gammas/decay")
            passed = False

    print("\n" + ("✓ Spectrum database validation PASSED" if passed
                  else "✗ Spectrum database validation FAILED"))
    return passed


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_SPECTRUM_DATABASE
    sys.exit(0 if validate_spectrum_database(path) else 1)
