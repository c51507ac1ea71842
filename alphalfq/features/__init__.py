"""MS1 feature assembly.

This module provides:
- Isotopic envelopes: one scan's isotope cluster of one species
- Chromatographic peaks: envelopes traced across scans, with intensity,
  apex, mass error and MBR scores
- Peak tracing and valley cutting of co-eluting features
- Apex-collision resolution for the peaks of one run
"""

from .isotopic_envelope import (
    IsotopicEnvelope,
    find_isotopic_envelope,
)

from .chromatographic_peak import (
    ChromatographicPeak,
    combine_mbr_scores,
    peaks_to_dataframe,
)

from .peak_tracing import (
    trace_peak,
    cut_peak,
    cut_envelopes,
)

from .peak_merging import (
    resolve_peak_collisions,
)

__all__ = [
    # Envelopes
    'IsotopicEnvelope',
    'find_isotopic_envelope',
    # Peaks
    'ChromatographicPeak',
    'combine_mbr_scores',
    'peaks_to_dataframe',
    # Tracing
    'trace_peak',
    'cut_peak',
    'cut_envelopes',
    # Merging
    'resolve_peak_collisions',
]
