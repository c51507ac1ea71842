"""MS1 quantification of MS/MS-identified peptides in one run.

For each identification a peak is traced from the MS1 scan closest to its MS2
retention time, for the precursor charge and (optionally) every other charge
state up to ``params.max_charge_state``. The traced peak is cut at valleys
that do not remove the MS2 time point, and peaks of different identifications
that converge on the same apex are reconciled by
``resolve_peak_collisions``.

Examples
--------
>>> from alphalfq.quantification import quantify_identifications
>>> peaks = quantify_identifications(identifications, peak_index, LfqParams())
>>> peaks[0].intensity, peaks[0].mass_error
"""

import logging
from typing import Iterable, List

from alphalfq.data import Identification
from alphalfq.exceptions import UsageError
from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.features.peak_merging import resolve_peak_collisions
from alphalfq.features.peak_tracing import cut_peak, trace_peak
from alphalfq.indexing import PeakIndex
from alphalfq.params import LfqParams

logger = logging.getLogger(__name__)


def charge_states_to_quantify(identification: Identification, params: LfqParams) -> List[int]:
    """Precursor charge first, then the remaining charges in ascending order."""
    precursor = identification.precursor_charge_state
    if not params.quantify_all_charges:
        return [precursor]
    others = [z for z in range(1, params.max_charge_state + 1) if z != precursor]
    return [precursor] + others


def quantify_identification(
    identification: Identification,
    index: PeakIndex,
    params: LfqParams,
) -> ChromatographicPeak:
    """Build the MSMS peak of one identification.

    The returned peak always has its intensity calculated; if no signal was
    found it has intensity 0 and a NaN mass error.
    """
    if identification.spectra_file is not index.spectra_file:
        raise UsageError(
            f"{identification!r} belongs to {identification.spectra_file}, "
            f"index is for {index.spectra_file}"
        )

    peak = ChromatographicPeak(identification, False, index.spectra_file)
    ms2_rt = identification.ms2_retention_time_in_minutes
    seed_scan = index.scan_index_for_rt(ms2_rt)

    envelopes = []
    for charge in charge_states_to_quantify(identification, params):
        envelopes.extend(trace_peak(index, seed_scan, identification.peakfinding_mass, charge, params))

    # Scan order; charge breaks ties within a scan
    envelopes.sort(key=lambda e: (e.scan_index, e.charge_state))
    peak.add_isotopic_envelopes(envelopes)
    peak.calculate_intensity_for_this_feature(params.integrate)
    cut_peak(peak, params, anchor_rt=ms2_rt)
    peak.resolve_identifications()
    return peak


def quantify_identifications(
    identifications: Iterable[Identification],
    index: PeakIndex,
    params: LfqParams,
) -> List[ChromatographicPeak]:
    """Quantify all identifications of the run covered by ``index``.

    Identifications from other runs are skipped.
    """
    spectra_file = index.spectra_file
    run_ids = [i for i in identifications if i.spectra_file is spectra_file]

    logger.info(f"Quantifying {len(run_ids):,} identifications in {spectra_file.filename_without_extension}...")

    peaks = [quantify_identification(identification, index, params) for identification in run_ids]
    n_empty = sum(1 for p in peaks if p.apex is None)

    peaks = resolve_peak_collisions(peaks, params.integrate)

    logger.info(
        f"✓ {spectra_file.filename_without_extension}: {len(peaks):,} MSMS peaks "
        f"({n_empty:,} identifications without MS1 signal)"
    )
    return peaks
