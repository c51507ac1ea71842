"""Match-between-runs.

This module provides:
- Donor → acceptor retention time alignment (robust monotone PCHIP)
- Per-acceptor scoring of transferred peaks (ppm, RT, intensity, scan count)
- Target and decoy candidate search, grouped per donor identification
- Calibration data and picked target/decoy q-values

Examples
--------
>>> from alphalfq.mbr import find_mbr_peaks, calculate_mbr_qvalues
>>> donor_groups = find_mbr_peaks(acceptor_index, acceptor_peaks, donor_peaks, params)
>>> qvalues = calculate_mbr_qvalues(donor_groups)
"""

from .rt_alignment import (
    RtAlignment,
    anchor_retention_times,
    paired_msms_peaks,
)
from .scorer import (
    MbrScorer,
    fit_robust_normal,
    log_fold_change_distribution,
)
from .donor_group import DonorGroup
from .transfer import (
    build_mbr_scorer,
    find_mbr_peaks,
)
from .calibration import (
    MBR_FEATURE_NAMES,
    MbrFeatures,
    ProbabilityCalibrator,
    accepted_mbr_peaks,
    calculate_mbr_qvalues,
    donor_group_features,
    donor_groups_to_dataframe,
)

__all__ = [
    # RT alignment
    "RtAlignment",
    "anchor_retention_times",
    "paired_msms_peaks",
    # Scoring
    "MbrScorer",
    "fit_robust_normal",
    "log_fold_change_distribution",
    # Transfer
    "DonorGroup",
    "build_mbr_scorer",
    "find_mbr_peaks",
    # Calibration
    "MBR_FEATURE_NAMES",
    "MbrFeatures",
    "ProbabilityCalibrator",
    "accepted_mbr_peaks",
    "calculate_mbr_qvalues",
    "donor_group_features",
    "donor_groups_to_dataframe",
]
