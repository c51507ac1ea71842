"""
Isotopic envelopes: one scan's isotope-resolved evidence for one species.

An envelope is anchored on its monoisotopic peak and carries the summed
intensity of the isotope peaks (M0, M+1, M+2, ...) found at the expected
13C spacing for its charge state.

Only already-present isotope peaks are assembled here; no theoretical isotope
distribution is generated or compared.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numba import njit

from alphalfq.constants import C13_MASS_DIFF
from alphalfq.data import IndexedPeak
from alphalfq.indexing import PeakIndex, find_closest_peak
from alphalfq.mass import to_mz
from alphalfq.params import LfqParams

# Isotopes looked up beyond the monoisotopic peak
MAX_ISOTOPES = 5


@dataclass(frozen=True, eq=False)
class IsotopicEnvelope:
    """Isotope cluster of one species at one charge state in one MS1 scan."""

    indexed_peak: IndexedPeak
    charge_state: int
    intensity: float

    def __post_init__(self):
        if self.indexed_peak is None:
            raise ValueError("IsotopicEnvelope requires a backing indexed peak")
        if self.charge_state <= 0:
            raise ValueError(f"Charge state must be positive, got {self.charge_state}")
        if not self.intensity > 0:
            raise ValueError(f"Envelope intensity must be positive, got {self.intensity}")

    @property
    def mz(self) -> float:
        return self.indexed_peak.mz

    @property
    def retention_time(self) -> float:
        return self.indexed_peak.retention_time

    @property
    def scan_index(self) -> int:
        return self.indexed_peak.zero_based_ms1_scan_index

    def __repr__(self):
        return (
            f"IsotopicEnvelope(mz={self.mz:.4f}, z={self.charge_state}, "
            f"rt={self.retention_time:.3f}, intensity={self.intensity:.3g})"
        )


@njit
def _collect_isotopes(
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    scan_offsets: np.ndarray,
    scan_index: int,
    mono_peak_idx: int,
    charge: int,
    ppm_tolerance: float,
    max_isotopes: int
):
    """Walk M+1, M+2, ... from a monoisotopic peak in one scan.

    Stops at the first missing isotope, so the result is always a
    consecutive run starting at M0.

    Returns:
        (n_isotopes, summed_intensity) including the monoisotopic peak
    """
    spacing = C13_MASS_DIFF / charge
    mono_mz = mz_array[mono_peak_idx]

    n_found = 1
    total = intensity_array[mono_peak_idx]

    for k in range(1, max_isotopes + 1):
        expected_mz = mono_mz + k * spacing
        idx = find_closest_peak(mz_array, scan_offsets, scan_index, expected_mz, ppm_tolerance)
        if idx < 0:
            break
        n_found += 1
        total += intensity_array[idx]

    return n_found, total


def find_isotopic_envelope(
    index: PeakIndex,
    scan_index: int,
    monoisotopic_mass: float,
    charge: int,
    params: LfqParams,
    ppm_tolerance: Optional[float] = None,
) -> Optional[IsotopicEnvelope]:
    """Look up the isotopic envelope of a species in one MS1 scan.

    Args:
        index: Peak index of the run
        scan_index: Zero-based MS1 scan index
        monoisotopic_mass: Neutral monoisotopic mass (Da)
        charge: Hypothesized charge state
        params: Peak finding parameters
        ppm_tolerance: Tolerance for the monoisotopic peak
            (defaults to ``params.ppm_tolerance``)

    Returns:
        IsotopicEnvelope, or None when the monoisotopic peak is absent or
        fewer than ``params.num_isotopes_required`` consecutive isotopes
        were found.
    """
    if ppm_tolerance is None:
        ppm_tolerance = params.ppm_tolerance

    mono_mz = to_mz(monoisotopic_mass, charge)
    mono_idx = find_closest_peak(index.mz_array, index.scan_offsets, scan_index, mono_mz, ppm_tolerance)
    if mono_idx < 0:
        return None

    n_isotopes, total_intensity = _collect_isotopes(
        index.mz_array, index.intensity_array, index.scan_offsets, scan_index,
        mono_idx, charge, params.isotope_ppm_tolerance, MAX_ISOTOPES
    )

    if n_isotopes < params.num_isotopes_required or total_intensity <= 0:
        return None

    return IsotopicEnvelope(
        indexed_peak=index.peak_at(mono_idx),
        charge_state=charge,
        intensity=float(total_intensity),
    )
