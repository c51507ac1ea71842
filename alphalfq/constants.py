"""Physical constants and default tolerances for label-free quantification.

All values are sourced from NIST or established proteomics standards.

Key Features
------------
- Correct PROTON_MASS (1.007276466622 Da, not hydrogen atom mass!)
- 13C isotope spacing used for isotopic envelope lookup
- Default tolerance settings for MS1 peak finding and match-between-runs

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
"""

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass (NOT hydrogen atom mass!)
# Source: NIST 2018 CODATA
# CRITICAL: Use 1.007276466622, not 1.007825 (which is H atom mass)
PROTON_MASS = 1.007276466622  # Da

# Electron mass
# Source: NIST 2018 CODATA
ELECTRON_MASS = 0.000548579909  # Da

# =============================================================================
# Isotope Masses
# =============================================================================

# 13C - 12C mass difference
# Isotope peaks of charge z are spaced by C13_MASS_DIFF / z in m/z
C13_MASS_DIFF = 1.0033548  # Da

# =============================================================================
# Default Tolerance Settings
# =============================================================================

# MS1 peak finding tolerance (ppm)
DEFAULT_PPM_TOLERANCE = 10.0

# Tolerance for locating the isotopes of an envelope relative to its
# monoisotopic peak (ppm)
DEFAULT_ISOTOPE_PPM_TOLERANCE = 5.0

# Match-between-runs search tolerance (ppm)
DEFAULT_MBR_PPM_TOLERANCE = 10.0

# Scale factor turning a median absolute deviation into a normal sigma
MAD_TO_SIGMA = 1.4826

# =============================================================================
# Mass Accuracy Validation
# =============================================================================

def validate_constants():
    """Validate that constants are physically reasonable.

    Raises AssertionError if any constant is out of expected range.
    """
    # Proton mass should be ~1.007276, NOT 1.007825 (hydrogen atom)
    assert 1.0072 < PROTON_MASS < 1.0073, f"PROTON_MASS is wrong: {PROTON_MASS}"

    assert 0.0005 < ELECTRON_MASS < 0.0006, f"ELECTRON_MASS is wrong: {ELECTRON_MASS}"

    # Hydrogen atom = proton + electron
    H_ATOM_MASS = PROTON_MASS + ELECTRON_MASS
    assert abs(H_ATOM_MASS - 1.007825) < 0.000001, \
        f"H atom mass inconsistent: {H_ATOM_MASS}"

    assert 1.0033 < C13_MASS_DIFF < 1.0034, f"C13_MASS_DIFF is wrong: {C13_MASS_DIFF}"
