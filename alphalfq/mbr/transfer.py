"""
Match-between-runs: transfer identifications from donor runs to an acceptor.

For every peptide quantified by MS/MS in some donor run but not identified in
the acceptor run:

1. Predict its acceptor retention time with the donor → acceptor RT alignment
2. Search the acceptor MS1 data within ``params.mbr_rt_window`` of that time
   for isotopic envelopes at the donor's charge states; every separate
   elution feature becomes a target MBR peak
3. Repeat the identical search at a decoy retention time, randomly shifted by
   at least ``params.decoy_rt_min_shift``; the features found there are decoy
   MBR peaks
4. Score targets and decoys with the acceptor's ``MbrScorer``

The result is one ``DonorGroup`` per transferred peptide. Decoy peaks are
negative controls for calibration and are never reported as quantifications.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np

from alphalfq.data import Identification, SpectraFileInfo
from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.features.isotopic_envelope import IsotopicEnvelope, find_isotopic_envelope
from alphalfq.features.peak_tracing import cut_envelopes, trace_peak
from alphalfq.indexing import PeakIndex
from alphalfq.mbr.donor_group import DonorGroup
from alphalfq.mbr.rt_alignment import RtAlignment, anchor_retention_times
from alphalfq.mbr.scorer import MbrScorer, log_fold_change_distribution
from alphalfq.params import LfqParams

logger = logging.getLogger(__name__)


def build_mbr_scorer(
    acceptor_file: SpectraFileInfo,
    acceptor_peaks: List[ChromatographicPeak],
    donor_peaks_by_file: Dict[SpectraFileInfo, List[ChromatographicPeak]],
    params: LfqParams,
) -> MbrScorer:
    """Acceptor scorer with an RT alignment and fold change for every donor run."""
    scorer = MbrScorer.from_acceptor_peaks(acceptor_file, acceptor_peaks, params)

    for donor_file, donor_peaks in donor_peaks_by_file.items():
        donor_rts, acceptor_rts = anchor_retention_times(donor_peaks, acceptor_peaks)
        alignment = RtAlignment.fit(donor_rts, acceptor_rts, params)
        fold_change = log_fold_change_distribution(donor_peaks, acceptor_peaks, params)
        scorer.add_donor_file(donor_file, alignment, fold_change)
        logger.info(
            f"✓ {donor_file.filename_without_extension} → {acceptor_file.filename_without_extension}: "
            f"{alignment.n_anchors:,} RT anchors, RT sigma {alignment.residual_sigma:.3f} min"
        )

    return scorer


def find_mbr_peaks(
    acceptor_index: PeakIndex,
    acceptor_peaks: List[ChromatographicPeak],
    donor_peaks: Iterable[ChromatographicPeak],
    params: LfqParams,
    scorer: Optional[MbrScorer] = None,
) -> List[DonorGroup]:
    """Search the acceptor run for peptides identified only in donor runs.

    Args:
        acceptor_index: MS1 peak index of the acceptor run
        acceptor_peaks: MSMS peaks already quantified in the acceptor run
        donor_peaks: MSMS peaks of other runs; peaks of the acceptor run are
            ignored
        params: Parameters (``mbr_rt_window``, ``mbr_ppm_tolerance``,
            ``decoy_rt_min_shift``, ``random_seed``, ...)
        scorer: Prebuilt scorer; built with ``build_mbr_scorer`` if None

    Returns:
        One DonorGroup per transferred modified sequence, in donor order.
        Groups may have no targets or no decoys.
    """
    acceptor_file = acceptor_index.spectra_file

    donor_peaks_by_file: Dict[SpectraFileInfo, List[ChromatographicPeak]] = defaultdict(list)
    for peak in donor_peaks:
        if peak.spectra_file_info is not acceptor_file:
            donor_peaks_by_file[peak.spectra_file_info].append(peak)

    if scorer is None:
        scorer = build_mbr_scorer(acceptor_file, acceptor_peaks, donor_peaks_by_file, params)

    identified = {
        i.modified_sequence for p in acceptor_peaks if not p.is_mbr_peak for i in p.identifications
    }
    donors = select_donor_peaks(donor_peaks_by_file, identified)

    logger.info(
        f"Searching {acceptor_file.filename_without_extension} for {len(donors):,} peptides "
        f"from {len(donor_peaks_by_file)} donor runs..."
    )

    rng = np.random.default_rng(params.random_seed)
    if acceptor_index.n_scans > 0:
        rt_range = (float(acceptor_index.retention_times[0]), float(acceptor_index.retention_times[-1]))
    else:
        rt_range = (0.0, 0.0)

    donor_groups = []
    for donor_peak in donors:
        donor_id = donor_peak.identifications[0]
        predicted_rt = scorer.predict_retention_time(donor_peak)
        decoy_rt = decoy_retention_time(rng, predicted_rt, rt_range, params)

        targets = _mbr_peaks_at(acceptor_index, scorer, donor_peak, donor_id, predicted_rt, params)
        decoys = _mbr_peaks_at(acceptor_index, scorer, donor_peak, donor_id, decoy_rt, params)
        donor_groups.append(DonorGroup(donor_id, targets, decoys))

    n_targets = sum(len(g.target_acceptors) for g in donor_groups)
    n_decoys = sum(len(g.decoy_acceptors) for g in donor_groups)
    n_found = sum(1 for g in donor_groups if g.target_acceptors)
    logger.info(
        f"✓ {acceptor_file.filename_without_extension}: {len(donor_groups):,} donor groups, "
        f"{n_found:,} with targets ({n_targets:,} target, {n_decoys:,} decoy peaks)"
    )
    return donor_groups


def select_donor_peaks(
    donor_peaks_by_file: Dict[SpectraFileInfo, List[ChromatographicPeak]],
    identified_in_acceptor: set,
) -> List[ChromatographicPeak]:
    """Most intense unambiguous MSMS donor peak per modified sequence.

    Sequences already identified in the acceptor run are skipped. Ties keep
    the first peak seen.
    """
    best: Dict[str, ChromatographicPeak] = {}
    for peaks in donor_peaks_by_file.values():
        for peak in peaks:
            if peak.is_mbr_peak or peak.apex is None or peak.num_identifications_by_full_seq != 1:
                continue
            seq = peak.identifications[0].modified_sequence
            if seq in identified_in_acceptor:
                continue
            if seq not in best or peak.intensity > best[seq].intensity:
                best[seq] = peak
    return list(best.values())


def decoy_retention_time(
    rng: np.random.Generator,
    predicted_rt: float,
    rt_range: Tuple[float, float],
    params: LfqParams,
) -> float:
    """Random RT at least ``decoy_rt_min_shift`` away from the predicted one.

    The shift is drawn uniformly from ``[min_shift, 2 * min_shift]`` in a
    random direction; the other direction is used if the first falls outside
    the run. If both do, the decoy RT lies outside the run and its search
    finds nothing.
    """
    shift = rng.uniform(params.decoy_rt_min_shift, 2.0 * params.decoy_rt_min_shift)
    direction = 1.0 if rng.random() < 0.5 else -1.0

    for sign in (direction, -direction):
        decoy_rt = predicted_rt + sign * shift
        if rt_range[0] <= decoy_rt <= rt_range[1]:
            return decoy_rt
    return predicted_rt + direction * shift


def _mbr_peaks_at(
    index: PeakIndex,
    scorer: MbrScorer,
    donor_peak: ChromatographicPeak,
    donor_id: Identification,
    center_rt: float,
    params: LfqParams,
) -> List[ChromatographicPeak]:
    """Scored MBR peaks of ``donor_id`` within the RT window around ``center_rt``."""
    peaks = []
    charges = sorted({e.charge_state for e in donor_peak.isotopic_envelopes}) or [donor_id.precursor_charge_state]

    for feature in search_window(index, donor_id.peakfinding_mass, charges, center_rt, params):
        peak = ChromatographicPeak.mbr_peak(donor_id, index.spectra_file, center_rt)
        peak.add_isotopic_envelopes(feature.envelopes)
        peak.split_rt = feature.split_rt
        peak.calculate_intensity_for_this_feature(params.integrate)
        peak.calculate_mbr_score(scorer, donor_peak)
        peaks.append(peak)

    return peaks


class WindowFeature(NamedTuple):
    """One elution feature found by ``search_window``."""
    seed: IsotopicEnvelope
    envelopes: List[IsotopicEnvelope]   # scan order, then charge
    split_rt: float                     # valley RT the feature was cut at, 0.0 if uncut


def search_window(
    index: PeakIndex,
    monoisotopic_mass: float,
    charges: List[int],
    center_rt: float,
    params: LfqParams,
) -> List[WindowFeature]:
    """Separate elution features of one species inside an RT window.

    Every envelope in the window is a potential seed. Starting from the most
    intense unclaimed seed, all charges are traced (without leaving the
    window) and the trace is cut at intensity valleys, keeping the seed. Only
    the envelopes surviving the cut are claimed, so a co-eluting neighbour
    cut away from one feature can seed its own.

    Returns:
        One ``WindowFeature`` per feature, most intense seed first
    """
    first, last = index.scan_range_for_rt_window(center_rt - params.mbr_rt_window, center_rt + params.mbr_rt_window)
    if first >= last:
        return []

    ppm = params.mbr_ppm_tolerance
    seeds = []
    for scan_index in range(first, last):
        for charge in charges:
            envelope = find_isotopic_envelope(index, scan_index, monoisotopic_mass, charge, params, ppm)
            if envelope is not None:
                seeds.append(envelope)
    seeds.sort(key=lambda e: e.intensity, reverse=True)

    claimed = set()
    features = []
    for seed in seeds:
        if seed.indexed_peak in claimed:
            continue

        envelopes = []
        for charge in charges:
            traced = trace_peak(index, seed.scan_index, monoisotopic_mass, charge, params, ppm, (first, last))
            envelopes.extend(e for e in traced if e.indexed_peak not in claimed)
        envelopes.sort(key=lambda e: (e.scan_index, e.charge_state))
        envelopes, split_rt = cut_envelopes(envelopes, params.discrimination_factor, anchor_rt=seed.retention_time)

        claimed.update(e.indexed_peak for e in envelopes)
        features.append(WindowFeature(seed, envelopes, split_rt))

    return features
