"""Calibration data for match-between-runs confidence.

Turning MBR scores into posterior error probabilities is left to an external
learner implementing ``ProbabilityCalibrator``. This module provides what such
a learner consumes (features, target/decoy labels and donor group ids for
grouped cross-validation) and a model-free baseline: picked target/decoy
q-values per donor group.

Examples
--------
>>> data = donor_group_features(donor_groups)
>>> calibrator.fit(data.features, data.is_decoy, data.group_ids)
>>> pep = calibrator.predict_pep(data.features)
>>>
>>> qvalues = calculate_mbr_qvalues(donor_groups)
>>> accepted = accepted_mbr_peaks(donor_groups, qvalues, max_qvalue=0.01)
"""

import logging
from typing import List, NamedTuple, Optional, Protocol, Sequence

import numpy as np

from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.mbr.donor_group import DonorGroup
from alphalfq.scoring.fdr import calculate_fdr, calculate_fdr_statistics

logger = logging.getLogger(__name__)

MBR_FEATURE_NAMES = (
    'mbr_score',
    'intensity_score',
    'rt_score',
    'ppm_score',
    'scan_count_score',
    'log2_intensity',
    'abs_mass_error',
    'scan_count',
    'num_charge_states_observed',
)


class MbrFeatures(NamedTuple):
    """One row per acceptor peak (targets, then decoys, group by group)."""
    features: np.ndarray    # (n_peaks, len(MBR_FEATURE_NAMES)) float64
    is_decoy: np.ndarray    # (n_peaks,) bool
    group_ids: np.ndarray   # (n_peaks,) int64, index into the donor group list
    peaks: List[ChromatographicPeak]


class ProbabilityCalibrator(Protocol):
    """Learner mapping MBR features to posterior error probabilities.

    Implementations should cross-validate by ``group_ids`` so that peaks of
    one donor group never end up in both training and test folds.
    """

    def fit(self, features: np.ndarray, is_decoy: np.ndarray, group_ids: np.ndarray) -> None:
        ...

    def predict_pep(self, features: np.ndarray) -> np.ndarray:
        ...


def peak_features(peak: ChromatographicPeak) -> np.ndarray:
    """Feature vector of one scored MBR peak, ordered as ``MBR_FEATURE_NAMES``."""
    log2_intensity = np.log2(peak.intensity) if peak.intensity > 0 else 0.0
    abs_mass_error = abs(peak.mass_error) if not np.isnan(peak.mass_error) else np.nan
    return np.array([
        peak.mbr_score,
        peak.intensity_score,
        peak.rt_score,
        peak.ppm_score,
        peak.scan_count_score,
        log2_intensity,
        abs_mass_error,
        peak.scan_count,
        peak.num_charge_states_observed,
    ], dtype=np.float64)


def donor_group_features(donor_groups: Sequence[DonorGroup]) -> MbrFeatures:
    """Feature matrix, decoy labels and group ids over all acceptor peaks."""
    rows = []
    is_decoy = []
    group_ids = []
    peaks = []

    for group_id, group in enumerate(donor_groups):
        for peak in group.target_acceptors:
            rows.append(peak_features(peak))
            is_decoy.append(False)
            group_ids.append(group_id)
            peaks.append(peak)
        for peak in group.decoy_acceptors:
            rows.append(peak_features(peak))
            is_decoy.append(True)
            group_ids.append(group_id)
            peaks.append(peak)

    if rows:
        features = np.vstack(rows)
    else:
        features = np.zeros((0, len(MBR_FEATURE_NAMES)), dtype=np.float64)

    return MbrFeatures(
        features=features,
        is_decoy=np.array(is_decoy, dtype=np.bool_),
        group_ids=np.array(group_ids, dtype=np.int64),
        peaks=peaks,
    )


def calculate_mbr_qvalues(
    donor_groups: Sequence[DonorGroup],
    scores: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Picked target/decoy q-value of every donor group.

    Within each group the best target and the best decoy compete; a group won
    by a decoy counts as one decoy hit. Groups won by a decoy and groups
    without peaks get q-value 1.

    Args:
        donor_groups: Groups from ``find_mbr_peaks``
        scores: Optional per-peak scores (higher is better) in
            ``donor_group_features`` row order; defaults to ``mbr_score``

    Returns:
        Q-values, one per donor group
    """
    data = donor_group_features(donor_groups)
    qvalues = np.ones(len(donor_groups), dtype=np.float64)
    if not data.peaks:
        return qvalues

    if scores is None:
        scores = data.features[:, MBR_FEATURE_NAMES.index('mbr_score')]
    scores = np.asarray(scores, dtype=np.float64)
    if scores.shape != data.is_decoy.shape:
        raise ValueError(f"Expected {data.is_decoy.size} scores, got {scores.size}")

    _, peak_qvalues = calculate_fdr(scores, data.is_decoy, group_ids=data.group_ids)

    # Every member of a group carries its winner's q-value
    qvalues[data.group_ids] = peak_qvalues

    stats = calculate_fdr_statistics(data.is_decoy, peak_qvalues)
    n_accepted = int(np.sum(qvalues <= 0.01))
    logger.info(
        f"✓ MBR q-values: {len(donor_groups):,} donor groups, {n_accepted:,} at 1% FDR "
        f"({stats['n_targets']:,} target / {stats['n_decoys']:,} decoy peaks)"
    )
    return qvalues


def accepted_mbr_peaks(
    donor_groups: Sequence[DonorGroup],
    qvalues: np.ndarray,
    max_qvalue: float = 0.01,
) -> List[ChromatographicPeak]:
    """Best target peak of every donor group passing ``max_qvalue``."""
    if len(qvalues) != len(donor_groups):
        raise ValueError(f"Expected {len(donor_groups)} q-values, got {len(qvalues)}")

    accepted = []
    for group, qvalue in zip(donor_groups, qvalues):
        best = group.best_target
        if best is not None and qvalue <= max_qvalue:
            accepted.append(best)
    return accepted


def donor_groups_to_dataframe(donor_groups: Sequence[DonorGroup]):
    """All acceptor peaks as a table with ``donor_group`` and ``is_decoy`` columns.

    Requires pandas.
    """
    import pandas as pd

    records = []
    for group_id, group in enumerate(donor_groups):
        for peak in group.target_acceptors:
            records.append({**peak.as_record(), 'donor_group': group_id, 'is_decoy': False})
        for peak in group.decoy_acceptors:
            records.append({**peak.as_record(), 'donor_group': group_id, 'is_decoy': True})
    return pd.DataFrame(records)
