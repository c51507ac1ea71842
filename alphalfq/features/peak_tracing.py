"""
Elution tracing: follow one species' isotopic envelopes across MS1 scans.

Tracing starts at a seed scan and walks backward and forward one MS1 scan at a
time, collecting the envelope found in each scan, until more than
``missed_scans_allowed`` consecutive scans have no envelope.

Traced peaks can contain two co-eluting features. ``cut_envelopes`` splits them
at the intensity valley between the two maxima; ``cut_peak`` applies it to a
peak and records the valley retention time in ``ChromatographicPeak.split_rt``.
"""

import logging
from typing import List, Optional, Tuple

from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.features.isotopic_envelope import IsotopicEnvelope, find_isotopic_envelope
from alphalfq.indexing import PeakIndex
from alphalfq.params import LfqParams

logger = logging.getLogger(__name__)

# Fewer apex-charge time points than this are never cut
MIN_POINTS_TO_CUT = 5


def trace_peak(
    index: PeakIndex,
    seed_scan_index: int,
    monoisotopic_mass: float,
    charge: int,
    params: LfqParams,
    ppm_tolerance: Optional[float] = None,
    scan_bounds: Optional[Tuple[int, int]] = None,
) -> List[IsotopicEnvelope]:
    """Collect the envelopes of one species/charge around a seed scan.

    Args:
        index: Peak index of the run
        seed_scan_index: Scan to start from (e.g. the MS2 precursor scan)
        monoisotopic_mass: Neutral monoisotopic mass (Da)
        charge: Charge state to trace
        params: Peak finding parameters
        ppm_tolerance: Monoisotopic peak tolerance (default ``params.ppm_tolerance``)
        scan_bounds: Optional ``[first, last)`` scan range tracing may not leave

    Returns:
        Envelopes in ascending scan order (empty if nothing was found)
    """
    if scan_bounds is None:
        first_scan, last_scan = 0, index.n_scans
    else:
        first_scan = max(0, scan_bounds[0])
        last_scan = min(index.n_scans, scan_bounds[1])

    if not first_scan <= seed_scan_index < last_scan:
        return []

    seed = find_isotopic_envelope(index, seed_scan_index, monoisotopic_mass, charge, params, ppm_tolerance)

    backward = _walk(index, seed_scan_index, -1, first_scan, last_scan,
                     monoisotopic_mass, charge, params, ppm_tolerance, seed is None)
    forward = _walk(index, seed_scan_index, 1, first_scan, last_scan,
                    monoisotopic_mass, charge, params, ppm_tolerance, seed is None)

    envelopes = backward[::-1]
    if seed is not None:
        envelopes.append(seed)
    envelopes.extend(forward)
    return envelopes


def _walk(index, seed_scan_index, direction, first_scan, last_scan,
          monoisotopic_mass, charge, params, ppm_tolerance, seed_missing):
    """Envelopes found walking away from the seed (nearest first)."""
    found = []
    missed = 1 if seed_missing else 0
    scan_index = seed_scan_index + direction

    while first_scan <= scan_index < last_scan:
        envelope = find_isotopic_envelope(index, scan_index, monoisotopic_mass, charge, params, ppm_tolerance)
        if envelope is None:
            missed += 1
            if missed > params.missed_scans_allowed:
                break
        else:
            missed = 0
            found.append(envelope)
        scan_index += direction

    return found


def cut_peak(peak: ChromatographicPeak, params: LfqParams, anchor_rt: Optional[float] = None):
    """Split a peak at an intensity valley separating two elution maxima.

    Removes the envelopes beyond the valley (see ``cut_envelopes``), sets
    ``peak.split_rt`` to the valley retention time and recalculates the
    peak's intensity. Peaks without envelopes are left untouched.

    Args:
        peak: Peak with intensity already calculated
        params: Parameters providing ``discrimination_factor`` and ``integrate``
        anchor_rt: Retention time that must stay in the peak (the MS2 scan
            of the identification); no cut removes it
    """
    if peak.apex is None:
        return

    envelopes, split_rt = cut_envelopes(peak.isotopic_envelopes, params.discrimination_factor, anchor_rt)
    if len(envelopes) == len(peak.isotopic_envelopes):
        return

    peak.isotopic_envelopes = envelopes
    peak.split_rt = split_rt
    peak.calculate_intensity_for_this_feature(params.integrate)
    logger.debug(f"Cut {peak!r} at valley RT {split_rt:.3f}")


def cut_envelopes(
    envelopes: List[IsotopicEnvelope],
    discrimination_factor: float,
    anchor_rt: Optional[float] = None,
) -> Tuple[List[IsotopicEnvelope], float]:
    """Drop the envelopes beyond intensity valleys around the apex.

    The valley search uses the envelopes of the apex charge state. Walking
    away from the apex, a cut happens when an envelope and the one after it
    both rise above the running minimum such that
    ``(intensity - valley) / intensity > discrimination_factor``.
    Everything from the valley outward (all charge states) is removed.
    Repeats until no valley is found. A valley that would remove
    ``anchor_rt`` (including one exactly at it) is not cut.

    Returns:
        (kept envelopes in input order, RT of the last valley cut or 0.0)
    """
    split_rt = 0.0
    while envelopes:
        apex = max(envelopes, key=lambda e: e.intensity)
        timepoints = sorted(
            (e for e in envelopes if e.charge_state == apex.charge_state),
            key=lambda e: e.retention_time
        )
        if len(timepoints) < MIN_POINTS_TO_CUT:
            break

        apex_pos = timepoints.index(apex)
        cut = None
        for direction in (1, -1):
            valley_pos = _find_valley(timepoints, apex_pos, direction, discrimination_factor)
            if valley_pos is None:
                continue
            valley_rt = timepoints[valley_pos].retention_time
            if anchor_rt is not None and _is_beyond(anchor_rt, valley_rt, direction):
                continue
            cut = (valley_rt, direction)
            break

        if cut is None:
            break

        split_rt, direction = cut
        envelopes = [
            e for e in envelopes
            if not _is_beyond(e.retention_time, split_rt, direction)
        ]

    return envelopes, split_rt


def _find_valley(timepoints, apex_pos, direction, discrimination_factor):
    """Position of a qualifying valley walking from the apex, or None."""
    valley_pos = None
    pos = apex_pos + direction

    while 0 <= pos < len(timepoints):
        intensity = timepoints[pos].intensity
        if valley_pos is None or intensity < timepoints[valley_pos].intensity:
            valley_pos = pos
        elif pos != valley_pos + direction:
            # two consecutive points must rise above the valley
            valley = timepoints[valley_pos].intensity
            previous = timepoints[pos - direction].intensity
            if (_rises(intensity, valley, discrimination_factor)
                    and _rises(previous, valley, discrimination_factor)):
                return valley_pos
        pos += direction

    return None


def _rises(intensity, valley, discrimination_factor):
    return (intensity - valley) / intensity > discrimination_factor


def _is_beyond(rt, valley_rt, direction):
    """True if ``rt`` is at the valley or on its far side."""
    if direction > 0:
        return rt >= valley_rt
    return rt <= valley_rt
