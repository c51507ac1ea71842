"""Target-decoy FDR and q-values (pure NumPy/Numba).

Used for match-between-runs: every donor group contributes target and decoy
acceptor peaks, and with picked competition only the best-scoring peak of each
group counts. A group whose best peak is a decoy counts as one decoy hit.

Examples
--------
>>> import numpy as np
>>> from alphalfq.scoring.fdr import calculate_fdr
>>>
>>> scores = np.array([91.0, 40.0, 85.0, 12.0, 77.0])
>>> is_decoy = np.array([False, True, False, True, False])
>>> fdr, qvalue = calculate_fdr(scores, is_decoy)
>>>
>>> # Best peak per donor group only
>>> group_ids = np.array([0, 0, 1, 1, 2])
>>> fdr, qvalue = calculate_fdr(scores, is_decoy, group_ids=group_ids)
"""

from __future__ import annotations

import numpy as np
from numba import njit


@njit
def _calculate_fdr_core(
    target_scores: np.ndarray, decoy_scores: np.ndarray, add_one: bool
) -> tuple[np.ndarray, np.ndarray]:
    """FDR and q-values for targets sorted by descending score.

    Parameters
    ----------
    target_scores : np.ndarray
        Target scores sorted descending (higher is better)
    decoy_scores : np.ndarray
        Decoy scores (any order)
    add_one : bool
        Count one extra decoy at every threshold (conservative estimate)

    Returns
    -------
    fdr : np.ndarray
        ``n_decoys_at_or_above / n_targets_at_or_above``, capped at 1
    qvalue : np.ndarray
        Minimum FDR at this score or any lower score
    """
    n_targets = target_scores.size
    sorted_decoys = np.sort(decoy_scores)
    n_decoys = sorted_decoys.size

    fdr = np.zeros(n_targets, dtype=np.float64)
    for i in range(n_targets):
        n_above = n_decoys - np.searchsorted(sorted_decoys, target_scores[i], side='left')
        if add_one:
            n_above += 1
        fdr[i] = min(1.0, n_above / (i + 1.0))

    qvalues = np.zeros(n_targets, dtype=np.float64)
    if n_targets == 0:
        return fdr, qvalues
    qvalues[-1] = fdr[-1]
    for i in range(n_targets - 2, -1, -1):
        qvalues[i] = min(fdr[i], qvalues[i + 1])

    return fdr, qvalues


@njit
def _pick_best_per_group(scores: np.ndarray, group_ids: np.ndarray) -> np.ndarray:
    """Index of the highest-scoring entry of each group (first on ties).

    Returns one index per distinct group, in ascending group id order.
    """
    order = np.argsort(group_ids, kind='mergesort')
    picked = np.empty(order.size, dtype=np.int64)
    n_groups = 0

    i = 0
    while i < order.size:
        group = group_ids[order[i]]
        best = order[i]
        j = i + 1
        while j < order.size and group_ids[order[j]] == group:
            if scores[order[j]] > scores[best]:
                best = order[j]
            j += 1
        picked[n_groups] = best
        n_groups += 1
        i = j

    return picked[:n_groups]


def calculate_fdr(
    scores: np.ndarray,
    is_decoy: np.ndarray,
    group_ids: np.ndarray | None = None,
    add_one: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Calculate FDR and q-values using the target-decoy approach.

    Parameters
    ----------
    scores : np.ndarray
        Scores (higher is better)
    is_decoy : np.ndarray
        Boolean decoy labels
    group_ids : np.ndarray, optional
        Integer group of each entry. If given, only the best entry of each
        group competes and every member of a group gets its winner's values.
    add_one : bool, default=False
        Conservative ``(n_decoys + 1) / n_targets`` estimate

    Returns
    -------
    fdr : np.ndarray
        FDR per entry (decoys and groups won by a decoy get 1.0)
    qvalue : np.ndarray
        Q-value per entry (decoys and groups won by a decoy get 1.0)
    """
    scores = np.asarray(scores, dtype=np.float64)
    is_decoy = np.asarray(is_decoy, dtype=np.bool_)
    if scores.shape != is_decoy.shape:
        raise ValueError("scores and is_decoy must have the same shape")

    n = scores.size
    if n == 0:
        return np.array([], dtype=np.float64), np.array([], dtype=np.float64)

    if group_ids is not None:
        group_ids = np.asarray(group_ids, dtype=np.int64)
        competing = _pick_best_per_group(scores, group_ids)
    else:
        competing = np.arange(n, dtype=np.int64)

    competing_decoy = is_decoy[competing]
    target_idx = competing[~competing_decoy]
    decoy_scores = scores[competing[competing_decoy]]

    fdr = np.ones(n, dtype=np.float64)
    qvalue = np.ones(n, dtype=np.float64)
    if target_idx.size == 0:
        return fdr, qvalue

    # Descending score; stable so earlier entries win ties
    sort_idx = np.argsort(-scores[target_idx], kind='mergesort')
    sorted_targets = target_idx[sort_idx]
    target_fdr, target_qvalue = _calculate_fdr_core(scores[sorted_targets], decoy_scores, add_one)

    fdr[sorted_targets] = target_fdr
    qvalue[sorted_targets] = target_qvalue

    if group_ids is not None:
        # Members inherit the values of their group's winner
        winner_of_group = dict(zip(group_ids[competing].tolist(), competing.tolist()))
        winners = np.array([winner_of_group[g] for g in group_ids.tolist()], dtype=np.int64)
        fdr = fdr[winners]
        qvalue = qvalue[winners]

    return fdr, qvalue


def calculate_fdr_statistics(
    is_decoy: np.ndarray, qvalue: np.ndarray
) -> dict[str, int | float]:
    """Target/decoy counts and targets passing 1%, 5% and 10% q-value.

    Examples
    --------
    >>> stats = calculate_fdr_statistics(is_decoy, qvalue)
    >>> stats['n_targets_fdr01']
    """
    is_decoy = np.asarray(is_decoy, dtype=np.bool_)
    qvalue = np.asarray(qvalue, dtype=np.float64)

    n_decoys = int(np.sum(is_decoy))
    stats: dict[str, int | float] = {
        "n_targets": int(is_decoy.size - n_decoys),
        "n_decoys": n_decoys,
        "decoy_fraction": float(n_decoys / is_decoy.size) if is_decoy.size > 0 else 0.0,
    }

    for fdr_threshold in [0.01, 0.05, 0.10]:
        key = f"n_targets_fdr{int(fdr_threshold * 100):02d}"
        stats[key] = int(np.sum((~is_decoy) & (qvalue <= fdr_threshold)))

    return stats
