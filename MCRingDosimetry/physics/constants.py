"""Physical constants and unit conversions for dose renormalization."""

import math

# Conversion factors
KEV_TO_JOULES = 1.602176634e-16  # Conversion from keV to Joules
MM3_TO_CM3 = 1.0e-3  # Conversion from mm³ to cm³
GRAMS_TO_KG = 1.0e-3  # Conversion from g to kg
SECONDS_PER_MINUTE = 60.0
SECONDS_PER_HOUR = 3600.0
GY_PER_S_TO_NGY_PER_H = SECONDS_PER_HOUR * 1.0e9  # Gy/s -> nGy/h

# Geometry
FULL_SOLID_ANGLE_SR = 4.0 * math.pi

# Particle identification
GAMMA_NAME = 'gamma'
ELECTRON_NAME = 'e-'
GAMMA_PDG_CODE = 22
ELECTRON_PDG_CODE = 11
PRIMARY_PARENT_ID = 0  # Parent id reported for source particles

# Material properties
WATER_DENSITY = 1.0  # Water density in g/cm³
TUNGSTEN_DENSITY = 19.3  # NIST G4_W density in g/cm³
PETG_DENSITY = 1.27  # PETG (C10H8O4 approximation) density in g/cm³

# Statistics
DEFAULT_RELIABILITY_THRESHOLD = 30  # Counts below which 1/sqrt(N) is unreliable

# Spectrum line matching
DEFAULT_LINE_MATCH_TOLERANCE_KEV = 0.5
