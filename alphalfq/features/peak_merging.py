"""
Apex-collision resolution for the peaks of one run.

Two peaks whose apex envelopes sit on the same indexed MS1 peak describe the
same physical feature. They are reconciled into one reported peak:

- MSMS + MSMS: merged (identifications unioned, envelopes de-duplicated)
- MSMS + MBR: the MSMS peak is kept, the MBR peak dropped
- MBR + MBR: the peak with the higher MBR score is kept

Merging can move a peak's apex onto another indexed peak, which may collide
again; resolution repeats until every apex is unique.

Not thread-safe: run one resolution pass per run, from one worker.
"""

import logging
from typing import Dict, List

from alphalfq.data import IndexedPeak
from alphalfq.exceptions import UsageError
from alphalfq.features.chromatographic_peak import ChromatographicPeak

logger = logging.getLogger(__name__)


def resolve_peak_collisions(peaks: List[ChromatographicPeak], integrate: bool) -> List[ChromatographicPeak]:
    """Reconcile peaks of one run that share an apex indexed peak.

    Args:
        peaks: Peaks of a single run, intensity already calculated
        integrate: Intensity mode used when recomputing merged peaks

    Returns:
        Surviving peaks. Peaks without an apex are passed through unchanged.
    """
    if not peaks:
        return []

    spectra_file = peaks[0].spectra_file_info
    by_apex: Dict[IndexedPeak, ChromatographicPeak] = {}
    without_apex = []
    n_merged = 0
    n_dropped = 0

    for peak in peaks:
        if peak.spectra_file_info is not spectra_file:
            raise UsageError("resolve_peak_collisions works on the peaks of one run at a time")
        if peak.apex is None:
            if peak.intensity != peak.intensity:  # NaN: never calculated
                raise UsageError(f"Intensity of {peak!r} was never calculated")
            without_apex.append(peak)
            continue

        incoming = peak
        while incoming is not None:
            key = incoming.apex.indexed_peak
            stored = by_apex.get(key)
            if stored is None or stored is incoming:
                by_apex[key] = incoming
                break

            if not stored.is_mbr_peak and not incoming.is_mbr_peak:
                del by_apex[key]
                stored.merge_feature_with(incoming, integrate)
                n_merged += 1
                # re-insert; the merged apex may collide with another peak
                incoming = stored
            elif stored.is_mbr_peak and not incoming.is_mbr_peak:
                by_apex[key] = incoming
                n_dropped += 1
                incoming = None
            elif not stored.is_mbr_peak and incoming.is_mbr_peak:
                n_dropped += 1
                incoming = None
            else:
                if incoming.mbr_score > stored.mbr_score:
                    by_apex[key] = incoming
                n_dropped += 1
                incoming = None

    resolved = list(by_apex.values()) + without_apex
    logger.info(
        f"✓ {spectra_file.filename_without_extension}: {len(resolved):,} peaks after collision resolution "
        f"({n_merged:,} merged, {n_dropped:,} MBR peaks dropped)"
    )
    return resolved
