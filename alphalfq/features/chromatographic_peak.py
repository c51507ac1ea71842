"""
Chromatographic peaks: per-run elution features built from isotopic envelopes.

A ChromatographicPeak belongs to exactly one run. It owns an ordered list of
IsotopicEnvelopes (scan order) and references one or more Identifications.
Several identifications on one peak is normal (shared or ambiguous peptides)
and is tracked through the ambiguity counters rather than resolved away.

Recomputation is explicit: after adding envelopes or merging, call
``calculate_intensity_for_this_feature`` again. Until the first call,
``intensity`` and ``mass_error`` are NaN.
"""

import math
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

import numpy as np

from alphalfq.data import Identification, SpectraFileInfo
from alphalfq.exceptions import ScorerFileMismatchError, UsageError
from alphalfq.features.isotopic_envelope import IsotopicEnvelope
from alphalfq.mass import to_mass, to_mz

if TYPE_CHECKING:
    from alphalfq.mbr.scorer import MbrScorer


class ChromatographicPeak:
    """Quantified elution feature of one or more identifications in one run.

    Args:
        identification: Identification the peak was built for
        is_mbr_peak: True if the peak was found by match-between-runs
        spectra_file_info: Run the peak belongs to

    Use ``ChromatographicPeak.mbr_peak`` to create MBR peaks with a predicted
    retention time.
    """

    def __init__(self, identification: Identification, is_mbr_peak: bool, spectra_file_info: SpectraFileInfo):
        if identification is None:
            raise UsageError("A ChromatographicPeak needs at least one identification")
        if spectra_file_info is None:
            raise UsageError("A ChromatographicPeak needs the run it belongs to")

        self.spectra_file_info = spectra_file_info
        self.is_mbr_peak = bool(is_mbr_peak)
        self.predicted_retention_time: Optional[float] = None

        self.identifications: List[Identification] = [identification]
        self.isotopic_envelopes: List[IsotopicEnvelope] = []

        self.intensity = math.nan
        self.mass_error = math.nan
        self.apex: Optional[IsotopicEnvelope] = None
        self.num_charge_states_observed = 0
        self.num_identifications_by_base_seq = 1
        self.num_identifications_by_full_seq = 1
        self.split_rt = 0.0

        # MBR scores; all four components are in [0, 1], mbr_score in [0, 100]
        self.intensity_score = 0.0
        self.rt_score = 0.0
        self.ppm_score = 0.0
        self.scan_count_score = 0.0
        self.mbr_score = 0.0

    @classmethod
    def mbr_peak(
        cls,
        identification: Identification,
        spectra_file_info: SpectraFileInfo,
        predicted_retention_time: float,
    ) -> 'ChromatographicPeak':
        """Create a match-between-runs peak at a predicted retention time."""
        if predicted_retention_time is None or not np.isfinite(predicted_retention_time):
            raise UsageError(f"MBR peaks need a finite predicted retention time, got {predicted_retention_time}")
        peak = cls(identification, True, spectra_file_info)
        peak.predicted_retention_time = float(predicted_retention_time)
        return peak

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    @property
    def scan_count(self) -> int:
        return len(self.isotopic_envelopes)

    @property
    def apex_retention_time(self) -> float:
        """Retention time of the apex envelope, -1 if there is none."""
        return self.apex.retention_time if self.apex is not None else -1.0

    @property
    def rt_start(self) -> float:
        if not self.isotopic_envelopes:
            return math.nan
        return min(e.retention_time for e in self.isotopic_envelopes)

    @property
    def rt_end(self) -> float:
        if not self.isotopic_envelopes:
            return math.nan
        return max(e.retention_time for e in self.isotopic_envelopes)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_isotopic_envelope(self, envelope: IsotopicEnvelope):
        """Append one envelope. Does not recompute intensity."""
        self.isotopic_envelopes.append(envelope)

    def add_isotopic_envelopes(self, envelopes: Iterable[IsotopicEnvelope]):
        """Append envelopes in scan order. Does not recompute intensity."""
        self.isotopic_envelopes.extend(envelopes)

    def calculate_intensity_for_this_feature(self, integrate: bool):
        """Recompute apex, intensity, mass error and charge state count.

        Args:
            integrate: Sum all envelope intensities (True) or report the
                apex envelope's intensity (False)
        """
        if not self.isotopic_envelopes:
            self.intensity = 0.0
            self.mass_error = math.nan
            self.num_charge_states_observed = 0
            self.apex = None
            return

        # First envelope with the maximum intensity wins ties
        apex = self.isotopic_envelopes[0]
        for envelope in self.isotopic_envelopes[1:]:
            if envelope.intensity > apex.intensity:
                apex = envelope
        self.apex = apex

        if integrate:
            self.intensity = float(sum(e.intensity for e in self.isotopic_envelopes))
        else:
            self.intensity = float(apex.intensity)

        # Smallest absolute error over all identifications (best-matching id)
        observed_mass = to_mass(apex.mz, apex.charge_state)
        mass_error = math.nan
        for identification in self.identifications:
            expected = identification.peakfinding_mass
            error = (observed_mass - expected) / expected * 1e6
            if math.isnan(mass_error) or abs(error) < abs(mass_error):
                mass_error = error
        self.mass_error = mass_error

        self.num_charge_states_observed = len({e.charge_state for e in self.isotopic_envelopes})

    def resolve_identifications(self):
        """Recount distinct base and modified sequences."""
        self.num_identifications_by_base_seq = len({i.base_sequence for i in self.identifications})
        self.num_identifications_by_full_seq = len({i.modified_sequence for i in self.identifications})

    def merge_feature_with(self, other: 'ChromatographicPeak', integrate: bool):
        """Merge another peak of the same run into this one.

        Identifications are unioned (by identity) and envelopes of ``other``
        whose indexed peak is not already present here are appended, so raw
        signal is never counted twice. ``other`` is not modified.
        """
        if other is self:
            return
        if other.spectra_file_info is not self.spectra_file_info:
            raise UsageError(
                f"Cannot merge peaks from different runs: {self.spectra_file_info} "
                f"and {other.spectra_file_info}"
            )

        this_features_peaks = {e.indexed_peak for e in self.isotopic_envelopes}

        known = {id(i) for i in self.identifications}
        for identification in other.identifications:
            if id(identification) not in known:
                known.add(id(identification))
                self.identifications.append(identification)
        self.resolve_identifications()

        for envelope in other.isotopic_envelopes:
            if envelope.indexed_peak not in this_features_peaks:
                this_features_peaks.add(envelope.indexed_peak)
                self.isotopic_envelopes.append(envelope)

        self.calculate_intensity_for_this_feature(integrate)

    # ------------------------------------------------------------------
    # Match-between-runs scoring
    # ------------------------------------------------------------------

    def calculate_mbr_score(self, scorer: 'MbrScorer', donor_peak: 'ChromatographicPeak'):
        """Score this MBR peak against its donor peak.

        The combined score is 100 times the geometric mean of the four
        component scores, so one score of 0 forces the combined score to 0.

        Raises:
            UsageError: If this is not an MBR peak
            ScorerFileMismatchError: If ``scorer`` was built for another run
        """
        if not self.is_mbr_peak:
            raise UsageError("calculate_mbr_score called on a peak that is not an MBR peak")
        if self.spectra_file_info is not scorer.acceptor_file:
            raise ScorerFileMismatchError(
                f"peak file {self.spectra_file_info}, scorer file {scorer.acceptor_file}"
            )

        self.intensity_score = scorer.calculate_intensity_score(self, donor_peak)
        self.rt_score = scorer.calculate_retention_time_score(self, donor_peak)
        self.ppm_score = scorer.calculate_ppm_error_score(self)
        self.scan_count_score = scorer.calculate_scan_count_score(self)

        self.mbr_score = combine_mbr_scores(
            self.intensity_score, self.rt_score, self.ppm_score, self.scan_count_score
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def as_record(self) -> Dict[str, object]:
        """All reportable fields of this peak as a flat dict."""
        first_id = self.identifications[0]
        protein_groups = sorted({
            pg.protein_group_name for i in self.identifications for pg in i.protein_groups
        })
        organisms = sorted({pg.organism for i in self.identifications for pg in i.protein_groups})
        has_apex = self.apex is not None

        return {
            'file_name': self.spectra_file_info.filename_without_extension,
            'base_sequence': "|".join(dict.fromkeys(i.base_sequence for i in self.identifications)),
            'full_sequence': "|".join(dict.fromkeys(i.modified_sequence for i in self.identifications)),
            'protein_group': ";".join(protein_groups),
            'organism': ";".join(organisms),
            'peptide_monoisotopic_mass': first_id.monoisotopic_mass,
            'ms2_retention_time': math.nan if self.is_mbr_peak else first_id.ms2_retention_time_in_minutes,
            'precursor_charge': first_id.precursor_charge_state,
            'theoretical_mz': to_mz(first_id.monoisotopic_mass, first_id.precursor_charge_state),
            'peak_intensity': self.intensity,
            'peak_rt_start': self.rt_start,
            'peak_rt_apex': self.apex.retention_time if has_apex else math.nan,
            'peak_rt_end': self.rt_end,
            'peak_mz': self.apex.mz if has_apex else math.nan,
            'peak_charge': self.apex.charge_state if has_apex else 0,
            'scan_count': self.scan_count,
            'num_charge_states_observed': self.num_charge_states_observed,
            'peak_detection_type': "MBR" if self.is_mbr_peak else "MSMS",
            'predicted_retention_time': (
                self.predicted_retention_time if self.predicted_retention_time is not None else math.nan
            ),
            'mbr_score': self.mbr_score if self.is_mbr_peak else math.nan,
            'ppm_score': self.ppm_score if self.is_mbr_peak else math.nan,
            'intensity_score': self.intensity_score if self.is_mbr_peak else math.nan,
            'rt_score': self.rt_score if self.is_mbr_peak else math.nan,
            'scan_count_score': self.scan_count_score if self.is_mbr_peak else math.nan,
            'psms_mapped': len(self.identifications),
            'base_sequences_mapped': self.num_identifications_by_base_seq,
            'full_sequences_mapped': self.num_identifications_by_full_seq,
            'peak_split_valley_rt': self.split_rt,
            'peak_apex_mass_error_ppm': self.mass_error,
        }

    def __repr__(self):
        kind = "MBR" if self.is_mbr_peak else "MSMS"
        return (
            f"ChromatographicPeak({kind}, {self.identifications[0].modified_sequence!r}, "
            f"file={self.spectra_file_info.filename_without_extension!r}, "
            f"n_envelopes={self.scan_count}, intensity={self.intensity:.3g})"
        )


def combine_mbr_scores(
    intensity_score: float,
    rt_score: float,
    ppm_score: float,
    scan_count_score: float
) -> float:
    """100 × geometric mean of the four component scores."""
    product = intensity_score * rt_score * ppm_score * scan_count_score
    if product <= 0.0:
        return 0.0
    return 100.0 * product ** 0.25


def peaks_to_dataframe(peaks: Iterable[ChromatographicPeak]):
    """Tabulate peaks (one row per peak) for the reporting layer.

    Requires pandas.
    """
    import pandas as pd

    return pd.DataFrame([peak.as_record() for peak in peaks])
