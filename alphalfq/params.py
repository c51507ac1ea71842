"""Parameters for MS1 peak finding and match-between-runs.

Uses ppm-based tolerances for instrument-independent parameters.
Retention times are in minutes throughout the package.
"""

from dataclasses import dataclass
from enum import Enum

from alphalfq.constants import (
    DEFAULT_ISOTOPE_PPM_TOLERANCE,
    DEFAULT_MBR_PPM_TOLERANCE,
    DEFAULT_PPM_TOLERANCE,
)
from alphalfq.exceptions import UsageError


class InstrumentType(Enum):
    """Instrument types with different mass accuracy characteristics."""
    ORBITRAP = "orbitrap"  # ~240K resolution, 2-5 ppm
    MR_TOF = "mr_tof"      # >1M resolution, <1 ppm
    ASTRAL = "astral"      # Orbitrap-based, similar to Orbitrap


@dataclass
class LfqParams:
    """Parameters for label-free quantification and MBR."""

    # MS1 peak finding
    ppm_tolerance: float = DEFAULT_PPM_TOLERANCE
    isotope_ppm_tolerance: float = DEFAULT_ISOTOPE_PPM_TOLERANCE
    num_isotopes_required: int = 2
    missed_scans_allowed: int = 1

    # Feature intensity: sum over the elution profile (True) or apex only
    integrate: bool = False

    # Valley cutting: cut when (intensity - valley) / intensity > discrimination_factor
    discrimination_factor: float = 0.6

    # Charge states
    max_charge_state: int = 6
    quantify_all_charges: bool = True

    # Match-between-runs
    mbr_rt_window: float = 1.0          # half-width (min) around predicted RT
    mbr_ppm_tolerance: float = DEFAULT_MBR_PPM_TOLERANCE
    decoy_rt_min_shift: float = 3.0     # min |decoy RT - predicted RT| (min)
    min_rt_anchors: int = 5
    random_seed: int = 42

    # Floors for fitted score distributions
    min_ppm_sigma: float = 0.5
    min_rt_sigma: float = 0.05
    min_log_intensity_sigma: float = 0.25

    def __post_init__(self):
        if self.ppm_tolerance <= 0 or self.isotope_ppm_tolerance <= 0 or self.mbr_ppm_tolerance <= 0:
            raise UsageError("ppm tolerances must be positive")
        if self.num_isotopes_required < 1:
            raise UsageError(f"num_isotopes_required must be >= 1, got {self.num_isotopes_required}")
        if self.missed_scans_allowed < 0:
            raise UsageError(f"missed_scans_allowed must be >= 0, got {self.missed_scans_allowed}")
        if not 0.0 < self.discrimination_factor <= 1.0:
            raise UsageError(f"discrimination_factor must be in (0, 1], got {self.discrimination_factor}")
        if self.max_charge_state < 1:
            raise UsageError(f"max_charge_state must be >= 1, got {self.max_charge_state}")
        if self.mbr_rt_window <= 0:
            raise UsageError(f"mbr_rt_window must be positive, got {self.mbr_rt_window}")
        # decoy regions must not overlap the target search window
        if self.decoy_rt_min_shift < 2 * self.mbr_rt_window:
            raise UsageError(
                f"decoy_rt_min_shift ({self.decoy_rt_min_shift}) must be at least "
                f"twice mbr_rt_window ({self.mbr_rt_window})"
            )

    @classmethod
    def for_instrument(cls, instrument: InstrumentType) -> 'LfqParams':
        """Create parameters optimized for specific instrument type.

        Args:
            instrument: Instrument type enum

        Returns:
            LfqParams with instrument-specific defaults
        """
        if instrument == InstrumentType.MR_TOF:
            return cls(
                ppm_tolerance=3.0,  # Ultra-tight for >1M resolution
                isotope_ppm_tolerance=1.5,
                mbr_ppm_tolerance=3.0,
                min_ppm_sigma=0.2,
            )
        elif instrument in (InstrumentType.ORBITRAP, InstrumentType.ASTRAL):
            return cls(
                ppm_tolerance=10.0,
                isotope_ppm_tolerance=5.0,
                mbr_ppm_tolerance=10.0,
            )
        else:
            raise ValueError(f"Unknown instrument type: {instrument}")
