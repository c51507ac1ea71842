"""Unit tests for ChromatographicPeak.

Tests cover:
1. Construction and the NaN-until-calculated contract
2. Intensity calculation (apex vs. integrated, ties, empty peaks)
3. Mass error with several identifications
4. Merging peaks without double-counting signal
5. MBR scoring guards and the geometric-mean combination
6. Record export
"""

import math

import numpy as np
import pytest

from alphalfq.exceptions import ScorerFileMismatchError, UsageError
from alphalfq.features.chromatographic_peak import (
    ChromatographicPeak,
    combine_mbr_scores,
    peaks_to_dataframe,
)
from alphalfq.mass import to_mz


class TestConstruction:
    """Test peak construction."""

    def test_new_peak_is_uncalculated(self, file_a, make_identification):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)

        assert math.isnan(peak.intensity)
        assert math.isnan(peak.mass_error)
        assert peak.apex is None
        assert peak.scan_count == 0
        assert peak.predicted_retention_time is None
        assert peak.num_identifications_by_base_seq == 1
        assert peak.num_identifications_by_full_seq == 1

    def test_none_identification_raises(self, file_a):
        with pytest.raises(UsageError):
            ChromatographicPeak(None, False, file_a)

    def test_usage_error_is_value_error(self, file_a):
        with pytest.raises(ValueError):
            ChromatographicPeak(None, False, file_a)

    def test_mbr_peak_keeps_predicted_rt(self, file_a, make_identification):
        peak = ChromatographicPeak.mbr_peak(make_identification(file_a), file_a, 12.5)

        assert peak.is_mbr_peak
        assert peak.predicted_retention_time == 12.5

    def test_mbr_peak_rejects_non_finite_rt(self, file_a, make_identification):
        with pytest.raises(UsageError):
            ChromatographicPeak.mbr_peak(make_identification(file_a), file_a, float('nan'))


class TestIntensity:
    """Test calculate_intensity_for_this_feature."""

    def test_apex_vs_integrated(self, file_a, make_identification, make_envelope):
        """Envelopes 100, 300, 200: apex mode 300, integrate mode 600."""
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak.add_isotopic_envelopes([
            make_envelope(1, 100.0), make_envelope(2, 300.0), make_envelope(3, 200.0)
        ])

        peak.calculate_intensity_for_this_feature(integrate=False)
        assert peak.intensity == pytest.approx(300.0)
        assert peak.apex.scan_index == 2

        peak.calculate_intensity_for_this_feature(integrate=True)
        assert peak.intensity == pytest.approx(600.0)
        assert peak.apex.scan_index == 2

    def test_empty_peak_sentinels(self, file_a, make_identification):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)

        peak.calculate_intensity_for_this_feature(integrate=True)

        assert peak.intensity == 0.0
        assert math.isnan(peak.mass_error)
        assert peak.num_charge_states_observed == 0
        assert peak.apex is None
        assert peak.apex_retention_time == -1

    def test_apex_tie_takes_first(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        first = make_envelope(1, 500.0)
        peak.add_isotopic_envelopes([first, make_envelope(2, 500.0)])

        peak.calculate_intensity_for_this_feature(integrate=False)

        assert peak.apex is first

    def test_charge_states_counted(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak.add_isotopic_envelopes([
            make_envelope(1, 100.0, charge=2),
            make_envelope(1, 80.0, mz=501.24, charge=3),
            make_envelope(2, 120.0, charge=2),
        ])

        peak.calculate_intensity_for_this_feature(integrate=True)

        assert peak.num_charge_states_observed == 2

    def test_adding_envelopes_does_not_recompute(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak.add_isotopic_envelope(make_envelope(1, 100.0))
        peak.calculate_intensity_for_this_feature(integrate=True)

        peak.add_isotopic_envelope(make_envelope(2, 900.0))

        assert peak.intensity == pytest.approx(100.0)
        peak.calculate_intensity_for_this_feature(integrate=True)
        assert peak.intensity == pytest.approx(1000.0)

    def test_rt_range(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak.add_isotopic_envelopes([make_envelope(s, 100.0 + s) for s in (10, 11, 12)])
        peak.calculate_intensity_for_this_feature(integrate=False)

        assert peak.rt_start == pytest.approx(0.5)
        assert peak.rt_end == pytest.approx(0.6)
        assert peak.apex_retention_time == pytest.approx(0.6)


class TestMassError:
    """Test mass error selection across identifications."""

    def test_single_identification(self, file_a, make_identification, make_envelope):
        mass = 1500.7
        peak = ChromatographicPeak(make_identification(file_a, mass=mass), False, file_a)
        observed_mz = to_mz(mass * (1 + 2e-6), 2)
        peak.add_isotopic_envelope(make_envelope(1, 100.0, mz=observed_mz))

        peak.calculate_intensity_for_this_feature(integrate=False)

        assert peak.mass_error == pytest.approx(2.0, abs=1e-3)

    def test_smallest_absolute_error_wins(self, file_a, make_identification, make_envelope):
        """Errors -3.2 and +1.1 ppm: reported mass error is +1.1."""
        observed_mass = 1500.0
        id_low = make_identification(file_a, "AAAK", mass=observed_mass / (1 - 3.2e-6))
        id_high = make_identification(file_a, "CCCK", mass=observed_mass / (1 + 1.1e-6))

        peak = ChromatographicPeak(id_low, False, file_a)
        peak.identifications.append(id_high)
        peak.add_isotopic_envelope(make_envelope(1, 100.0, mz=to_mz(observed_mass, 2)))

        peak.calculate_intensity_for_this_feature(integrate=False)

        assert peak.mass_error == pytest.approx(1.1, abs=1e-3)


class TestMerge:
    """Test merge_feature_with."""

    def test_merge_unions_identifications_and_envelopes(self, file_a, make_identification, make_envelope):
        """[P1, P2] + [P2, P3] gives 3 envelopes and 2 identifications."""
        id1 = make_identification(file_a, "AAAK")
        id2 = make_identification(file_a, "CCCK")
        p1, p2, p3 = make_envelope(1, 100.0), make_envelope(2, 300.0), make_envelope(3, 200.0)

        peak_a = ChromatographicPeak(id1, False, file_a)
        peak_a.add_isotopic_envelopes([p1, p2])
        peak_a.calculate_intensity_for_this_feature(integrate=True)
        peak_b = ChromatographicPeak(id2, False, file_a)
        peak_b.add_isotopic_envelopes([make_envelope(2, 300.0), p3])
        peak_b.calculate_intensity_for_this_feature(integrate=True)

        peak_a.merge_feature_with(peak_b, integrate=True)

        assert peak_a.scan_count == 3
        assert len(peak_a.identifications) == 2
        assert peak_a.num_identifications_by_base_seq == 2
        assert peak_a.num_identifications_by_full_seq == 2
        assert peak_a.intensity == pytest.approx(600.0)

    def test_merge_does_not_modify_other(self, file_a, make_identification, make_envelope):
        peak_a = ChromatographicPeak(make_identification(file_a, "AAAK"), False, file_a)
        peak_a.add_isotopic_envelope(make_envelope(1, 100.0))
        peak_b = ChromatographicPeak(make_identification(file_a, "CCCK"), False, file_a)
        peak_b.add_isotopic_envelope(make_envelope(2, 200.0))
        peak_b.calculate_intensity_for_this_feature(integrate=True)

        peak_a.merge_feature_with(peak_b, integrate=True)

        assert peak_b.scan_count == 1
        assert len(peak_b.identifications) == 1
        assert peak_b.intensity == pytest.approx(200.0)

    def test_self_merge_is_noop(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak.add_isotopic_envelopes([make_envelope(1, 100.0), make_envelope(2, 200.0)])
        peak.calculate_intensity_for_this_feature(integrate=True)

        peak.merge_feature_with(peak, integrate=True)

        assert peak.scan_count == 2
        assert len(peak.identifications) == 1
        assert peak.intensity == pytest.approx(300.0)

    def test_merge_with_empty_peak(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a, "AAAK"), False, file_a)
        peak.add_isotopic_envelopes([make_envelope(s, 100.0 * s) for s in (1, 2, 3, 4)])
        peak.calculate_intensity_for_this_feature(integrate=True)
        original = list(peak.isotopic_envelopes)
        empty = ChromatographicPeak(make_identification(file_a, "CCCK"), False, file_a)
        empty.calculate_intensity_for_this_feature(integrate=True)

        peak.merge_feature_with(empty, integrate=True)

        assert len(peak.isotopic_envelopes) == len(original)
        assert all(kept is before for kept, before in zip(peak.isotopic_envelopes, original))
        assert peak.intensity == pytest.approx(1000.0, rel=1e-9)
        assert len(peak.identifications) == 2

    def test_shared_identification_not_duplicated(self, file_a, make_identification, make_envelope):
        shared = make_identification(file_a, "AAAK")
        peak_a = ChromatographicPeak(shared, False, file_a)
        peak_a.add_isotopic_envelope(make_envelope(1, 100.0))
        peak_b = ChromatographicPeak(shared, False, file_a)
        peak_b.add_isotopic_envelope(make_envelope(2, 100.0))

        peak_a.merge_feature_with(peak_b, integrate=True)

        assert len(peak_a.identifications) == 1
        assert peak_a.scan_count == 2

    def test_same_sequence_different_identifications(self, file_a, make_identification, make_envelope):
        """Two PSMs of one peptide: 2 identifications, 1 distinct sequence."""
        peak_a = ChromatographicPeak(make_identification(file_a, "AAAK", rt=10.0), False, file_a)
        peak_b = ChromatographicPeak(make_identification(file_a, "AAAK", rt=10.1), False, file_a)
        peak_b.add_isotopic_envelope(make_envelope(2, 100.0))

        peak_a.merge_feature_with(peak_b, integrate=True)

        assert len(peak_a.identifications) == 2
        assert peak_a.num_identifications_by_full_seq == 1

    def test_merge_across_files_raises(self, file_a, file_b, make_identification):
        peak_a = ChromatographicPeak(make_identification(file_a), False, file_a)
        peak_b = ChromatographicPeak(make_identification(file_b), False, file_b)

        with pytest.raises(UsageError):
            peak_a.merge_feature_with(peak_b, integrate=True)


class FixedScorer:
    """Scorer returning constant sub-scores."""

    def __init__(self, acceptor_file, intensity=1.0, rt=1.0, ppm=1.0, scan_count=1.0):
        self.acceptor_file = acceptor_file
        self.scores = (intensity, rt, ppm, scan_count)

    def calculate_intensity_score(self, acceptor_peak, donor_peak):
        return self.scores[0]

    def calculate_retention_time_score(self, acceptor_peak, donor_peak):
        return self.scores[1]

    def calculate_ppm_error_score(self, acceptor_peak):
        return self.scores[2]

    def calculate_scan_count_score(self, acceptor_peak):
        return self.scores[3]


class TestMbrScore:
    """Test calculate_mbr_score and the score combination."""

    def test_perfect_scores_give_100(self):
        assert combine_mbr_scores(1.0, 1.0, 1.0, 1.0) == pytest.approx(100.0)

    def test_any_zero_gives_zero(self):
        assert combine_mbr_scores(0.0, 1.0, 1.0, 1.0) == 0.0
        assert combine_mbr_scores(0.9, 0.8, 0.0, 0.7) == 0.0

    def test_geometric_mean(self):
        assert combine_mbr_scores(0.5, 0.5, 0.5, 0.5) == pytest.approx(50.0)
        assert combine_mbr_scores(1.0, 1.0, 1.0, 0.0625) == pytest.approx(50.0)

    def test_scores_stored_on_peak(self, file_a, file_b, make_identification):
        donor = ChromatographicPeak(make_identification(file_b), False, file_b)
        peak = ChromatographicPeak.mbr_peak(make_identification(file_b), file_a, 10.0)

        peak.calculate_mbr_score(FixedScorer(file_a, 0.5, 0.5, 0.5, 0.5), donor)

        assert peak.intensity_score == 0.5
        assert peak.rt_score == 0.5
        assert peak.ppm_score == 0.5
        assert peak.scan_count_score == 0.5
        assert peak.mbr_score == pytest.approx(50.0)

    def test_scorer_for_other_file_raises(self, file_a, file_b, make_identification):
        donor = ChromatographicPeak(make_identification(file_b), False, file_b)
        peak = ChromatographicPeak.mbr_peak(make_identification(file_b), file_a, 10.0)

        with pytest.raises(ScorerFileMismatchError) as excinfo:
            peak.calculate_mbr_score(FixedScorer(file_b), donor)

        assert excinfo.value.error_code == "SCORER_FILE_MISMATCH"
        assert "Mismatch between scorer and peak" in str(excinfo.value)

    def test_non_mbr_peak_raises(self, file_a, make_identification):
        peak = ChromatographicPeak(make_identification(file_a), False, file_a)

        with pytest.raises(UsageError):
            peak.calculate_mbr_score(FixedScorer(file_a), peak)


class TestRecords:
    """Test as_record and peaks_to_dataframe."""

    def test_msms_record(self, file_a, make_identification, make_envelope):
        peak = ChromatographicPeak(make_identification(file_a, "AAAK", rt=0.1), False, file_a)
        peak.add_isotopic_envelopes([make_envelope(1, 100.0), make_envelope(2, 300.0)])
        peak.calculate_intensity_for_this_feature(integrate=False)

        record = peak.as_record()

        assert record['file_name'] == "run_a"
        assert record['full_sequence'] == "AAAK"
        assert record['protein_group'] == "P_AAAK"
        assert record['organism'] == "Homo sapiens"
        assert record['peak_detection_type'] == "MSMS"
        assert record['peak_intensity'] == pytest.approx(300.0)
        assert record['ms2_retention_time'] == pytest.approx(0.1)
        assert record['scan_count'] == 2
        assert np.isnan(record['mbr_score'])

    def test_mbr_record(self, file_a, file_b, make_identification):
        peak = ChromatographicPeak.mbr_peak(make_identification(file_b, "AAAK"), file_a, 11.0)
        peak.calculate_intensity_for_this_feature(integrate=False)

        record = peak.as_record()

        assert record['peak_detection_type'] == "MBR"
        assert record['predicted_retention_time'] == pytest.approx(11.0)
        assert np.isnan(record['ms2_retention_time'])
        assert np.isnan(record['peak_rt_apex'])
        assert record['mbr_score'] == 0.0

    def test_dataframe(self, file_a, make_identification, make_envelope):
        pytest.importorskip("pandas")
        peaks = []
        for seq in ("AAAK", "CCCK"):
            peak = ChromatographicPeak(make_identification(file_a, seq), False, file_a)
            peak.add_isotopic_envelope(make_envelope(1, 100.0))
            peak.calculate_intensity_for_this_feature(integrate=False)
            peaks.append(peak)

        df = peaks_to_dataframe(peaks)

        assert len(df) == 2
        assert list(df['full_sequence']) == ["AAAK", "CCCK"]
