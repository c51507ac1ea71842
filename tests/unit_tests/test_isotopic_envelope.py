"""Unit tests for isotopic envelope lookup."""

import numpy as np
import pytest

from alphalfq.constants import C13_MASS_DIFF
from alphalfq.data import IndexedPeak, SpectraFileInfo
from alphalfq.features.isotopic_envelope import IsotopicEnvelope, find_isotopic_envelope
from alphalfq.indexing import PeakIndex
from alphalfq.mass import to_mz
from alphalfq.params import LfqParams

MASS = 1500.7


def one_scan_index(mz, intensity):
    info = SpectraFileInfo("/data/one_scan.mzML")
    return PeakIndex.from_scans(info, [(5.0, np.array(mz), np.array(intensity))])


class TestIsotopicEnvelope:
    """Test the envelope record."""

    def test_properties(self):
        peak = IndexedPeak(mz=751.357, intensity=1e5, zero_based_ms1_scan_index=7, retention_time=3.2)
        envelope = IsotopicEnvelope(peak, 2, 2.2e5)

        assert envelope.mz == 751.357
        assert envelope.retention_time == 3.2
        assert envelope.scan_index == 7
        assert envelope.charge_state == 2
        assert envelope.intensity == 2.2e5

    def test_requires_peak(self):
        with pytest.raises(ValueError):
            IsotopicEnvelope(None, 2, 100.0)

    def test_requires_positive_intensity(self):
        peak = IndexedPeak(mz=751.357, intensity=1e5, zero_based_ms1_scan_index=7, retention_time=3.2)
        with pytest.raises(ValueError):
            IsotopicEnvelope(peak, 2, 0.0)


class TestFindIsotopicEnvelope:
    """Test envelope assembly from indexed peaks."""

    @pytest.mark.parametrize("charge", [1, 2, 3])
    def test_sums_consecutive_isotopes(self, charge):
        mono = to_mz(MASS, charge)
        spacing = C13_MASS_DIFF / charge
        index = one_scan_index([mono, mono + spacing, mono + 2 * spacing], [100.0, 80.0, 40.0])

        envelope = find_isotopic_envelope(index, 0, MASS, charge, LfqParams())

        assert envelope is not None
        assert envelope.charge_state == charge
        assert envelope.intensity == pytest.approx(220.0)
        assert envelope.mz == pytest.approx(mono)

    def test_requires_isotopes(self):
        mono = to_mz(MASS, 2)
        index = one_scan_index([mono], [100.0])

        assert find_isotopic_envelope(index, 0, MASS, 2, LfqParams()) is None
        assert find_isotopic_envelope(index, 0, MASS, 2, LfqParams(num_isotopes_required=1)) is not None

    def test_stops_at_gap(self):
        """M+2 without M+1 is not part of the envelope."""
        mono = to_mz(MASS, 2)
        spacing = C13_MASS_DIFF / 2
        index = one_scan_index([mono, mono + 2 * spacing, mono + 3 * spacing], [100.0, 40.0, 20.0])

        assert find_isotopic_envelope(index, 0, MASS, 2, LfqParams()) is None

    def test_wrong_charge_spacing(self):
        mono = to_mz(MASS, 2)
        index = one_scan_index([mono, mono + C13_MASS_DIFF], [100.0, 80.0])

        assert find_isotopic_envelope(index, 0, MASS, 2, LfqParams()) is None

    def test_mass_outside_tolerance(self):
        mono = to_mz(MASS, 2)
        spacing = C13_MASS_DIFF / 2
        index = one_scan_index([mono, mono + spacing], [100.0, 80.0])
        shifted = MASS * (1 + 20e-6)

        assert find_isotopic_envelope(index, 0, shifted, 2, LfqParams(ppm_tolerance=10.0)) is None
        assert find_isotopic_envelope(index, 0, shifted, 2, LfqParams(), ppm_tolerance=25.0) is not None
