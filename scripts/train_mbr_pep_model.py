#!/usr/bin/env python
"""Train a Random Forest PEP model on match-between-runs donor groups.

Input is a TSV written from ``alphalfq.mbr.donor_groups_to_dataframe`` (one row
per target or decoy acceptor peak, with ``donor_group`` and ``is_decoy``
columns). Decoys are the negative class, targets the (noisy) positive class.

Cross-validation folds are split by donor group so that a target and its
decoys never end up on different sides of a fold. Every peak gets an
out-of-fold decoy probability, which is compared with the plain MBR score by
the number of donor groups passing 1% picked q-value.

Usage:
    python scripts/train_mbr_pep_model.py donor_groups.tsv [output.pkl]
"""

import pickle
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import GroupKFold

from alphalfq.mbr.calibration import MBR_FEATURE_NAMES
from alphalfq.scoring.fdr import calculate_fdr

# Table column for each calibration feature
FEATURE_COLUMNS = {
    'mbr_score': 'mbr_score',
    'intensity_score': 'intensity_score',
    'rt_score': 'rt_score',
    'ppm_score': 'ppm_score',
    'scan_count_score': 'scan_count_score',
    'log2_intensity': 'peak_intensity',
    'abs_mass_error': 'peak_apex_mass_error_ppm',
    'scan_count': 'scan_count',
    'num_charge_states_observed': 'num_charge_states_observed',
}

N_FOLDS = 5


def load_features(path: Path):
    table = pd.read_csv(path, sep='\t')
    X = np.zeros((len(table), len(MBR_FEATURE_NAMES)), dtype=np.float64)
    for j, name in enumerate(MBR_FEATURE_NAMES):
        values = table[FEATURE_COLUMNS[name]].to_numpy(dtype=np.float64)
        if name == 'log2_intensity':
            values = np.log2(np.where(values > 0, values, 1.0))
        elif name == 'abs_mass_error':
            values = np.abs(values)
        X[:, j] = values
    X = np.nan_to_num(X, nan=0.0)
    is_decoy = table['is_decoy'].to_numpy(dtype=np.bool_)
    group_ids = table['donor_group'].to_numpy(dtype=np.int64)
    return X, is_decoy, group_ids


def n_groups_at_fdr(scores, is_decoy, group_ids, threshold=0.01):
    _, qvalue = calculate_fdr(scores, is_decoy, group_ids=group_ids)
    passing = np.unique(group_ids[(~is_decoy) & (qvalue <= threshold)])
    return passing.size


def main(argv):
    if len(argv) < 2:
        print(__doc__)
        return 1

    data_path = Path(argv[1])
    output_path = Path(argv[2]) if len(argv) > 2 else Path.cwd() / "mbr_pep_model.pkl"

    print("=" * 80)
    print("AlphaLFQ: MBR PEP model training")
    print("=" * 80)
    print()

    print("[1] Loading donor groups...")
    print(f"    Path: {data_path}")
    X, is_decoy, group_ids = load_features(data_path)
    print(f"    ✓ {len(X):,} peaks in {np.unique(group_ids).size:,} donor groups")
    print(f"      Targets: {(~is_decoy).sum():,}")
    print(f"      Decoys:  {is_decoy.sum():,}")
    print()

    if is_decoy.sum() == 0 or (~is_decoy).sum() == 0:
        print("⚠ Need both targets and decoys to train")
        return 1

    print(f"[2] Training Random Forest ({N_FOLDS}-fold, grouped by donor)...")
    pep = np.zeros(len(X), dtype=np.float64)
    n_folds = min(N_FOLDS, np.unique(group_ids).size)
    for fold, (train_idx, test_idx) in enumerate(GroupKFold(n_splits=n_folds).split(X, is_decoy, group_ids)):
        rf = RandomForestClassifier(
            n_estimators=300,
            max_depth=12,
            min_samples_leaf=5,
            class_weight='balanced',
            random_state=42,
            n_jobs=-1,
        )
        rf.fit(X[train_idx], is_decoy[train_idx])
        decoy_column = list(rf.classes_).index(True)
        pep[test_idx] = rf.predict_proba(X[test_idx])[:, decoy_column]
        print(f"    ✓ Fold {fold + 1}/{n_folds}")
    print()

    print("[3] Donor groups at 1% FDR")
    baseline = n_groups_at_fdr(X[:, MBR_FEATURE_NAMES.index('mbr_score')], is_decoy, group_ids)
    calibrated = n_groups_at_fdr(1.0 - pep, is_decoy, group_ids)
    print(f"    MBR score:     {baseline:,}")
    print(f"    RF (1 - PEP):  {calibrated:,}")
    print()

    print(f"[4] Training final model and saving to {output_path}...")
    rf = RandomForestClassifier(
        n_estimators=300,
        max_depth=12,
        min_samples_leaf=5,
        class_weight='balanced',
        random_state=42,
        n_jobs=-1,
    )
    rf.fit(X, is_decoy)
    model_data = {
        'model': rf,
        'feature_names': list(MBR_FEATURE_NAMES),
        'groups_at_1pct_fdr': calibrated,
        'baseline_groups_at_1pct_fdr': baseline,
    }
    with open(output_path, 'wb') as f:
        pickle.dump(model_data, f)
    print("    ✓ Model saved")
    print()
    print("=" * 80)
    print("DONE!")
    print("=" * 80)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
