"""Charge/mass transforms used by peak finding and mass error calculation.

M = (m/z) × z - z × proton_mass
m/z = (M + z × proton_mass) / z

Numba versions are used inside the tight per-scan loops; the functions are
callable from plain Python as well.
"""

import numpy as np
from numba import njit

from alphalfq.constants import PROTON_MASS


@njit
def to_mass(mz: float, charge: int) -> float:
    """Convert an observed m/z to neutral monoisotopic mass.

    Args:
        mz: Mass-to-charge ratio
        charge: Charge state (> 0)

    Returns:
        Neutral mass in Da
    """
    return mz * charge - charge * PROTON_MASS


@njit
def to_mz(mass: float, charge: int) -> float:
    """Convert a neutral mass to the m/z of the given charge state."""
    return (mass + charge * PROTON_MASS) / charge


@njit
def calculate_ppm_error(observed: float, expected: float) -> float:
    """Signed relative error in parts per million."""
    return (observed - expected) / expected * 1e6


@njit
def ppm_to_da(mass: float, ppm: float) -> float:
    """Absolute tolerance (Da or Th) for a ppm tolerance at ``mass``."""
    return mass * ppm / 1e6


def to_mass_array(mz: np.ndarray, charge: np.ndarray) -> np.ndarray:
    """Vectorized neutral mass for arrays of m/z and charge."""
    mz = np.asarray(mz, dtype=np.float64)
    charge = np.asarray(charge, dtype=np.float64)
    return mz * charge - charge * PROTON_MASS
