"""Pytest configuration for AlphaLFQ tests.

Provides runs, identifications and synthetic MS1 data. Synthetic species elute
as Gaussians sampled every 0.05 min, each scan carrying three isotope peaks
(M0, M+1, M+2) at the 13C spacing of the species' charge.
"""

import numpy as np
import pytest

from alphalfq.constants import C13_MASS_DIFF
from alphalfq.data import Identification, IndexedPeak, ProteinGroup, SpectraFileInfo
from alphalfq.features.isotopic_envelope import IsotopicEnvelope
from alphalfq.indexing import PeakIndex
from alphalfq.mass import to_mz
from alphalfq.params import LfqParams

SCAN_INTERVAL = 0.05  # min
ISOTOPE_RATIOS = (1.0, 0.8, 0.4)


@pytest.fixture
def params():
    """Default parameters."""
    return LfqParams()


@pytest.fixture
def file_a():
    return SpectraFileInfo("/data/run_a.raw", condition="control", biological_replicate=1)


@pytest.fixture
def file_b():
    return SpectraFileInfo("/data/run_b.raw", condition="control", biological_replicate=2)


@pytest.fixture
def make_identification():
    """Factory for identifications (mass in Da, RT in min)."""
    def _make(spectra_file, sequence="PEPTIDEK", mass=1500.7, rt=10.0, charge=2,
              modified_sequence=None, organism="Homo sapiens"):
        return Identification(
            spectra_file=spectra_file,
            base_sequence=sequence,
            modified_sequence=modified_sequence or sequence,
            monoisotopic_mass=mass,
            ms2_retention_time_in_minutes=rt,
            precursor_charge_state=charge,
            protein_groups=(ProteinGroup(f"P_{sequence}", gene_name=f"G_{sequence}", organism=organism),),
        )
    return _make


@pytest.fixture
def make_envelope():
    """Factory for envelopes without a peak index."""
    def _make(scan, intensity, rt=None, mz=751.357, charge=2):
        if rt is None:
            rt = scan * SCAN_INTERVAL
        peak = IndexedPeak(mz=mz, intensity=intensity, zero_based_ms1_scan_index=scan, retention_time=rt)
        return IsotopicEnvelope(peak, charge, intensity)
    return _make


def species_peaks(mass, charge, apex_rt, apex_intensity, rts, width=0.1, min_fraction=0.01):
    """Per-scan (mz, intensity) lists of one Gaussian-eluting species."""
    mono_mz = to_mz(mass, charge)
    per_scan = []
    for rt in rts:
        profile = apex_intensity * np.exp(-0.5 * ((rt - apex_rt) / width) ** 2)
        peaks = []
        if profile >= min_fraction * apex_intensity:
            for k, ratio in enumerate(ISOTOPE_RATIOS):
                peaks.append((mono_mz + k * C13_MASS_DIFF / charge, profile * ratio))
        per_scan.append(peaks)
    return per_scan


@pytest.fixture
def make_run():
    """Factory building a PeakIndex from species descriptions.

    Each species is a dict with ``mass``, ``charge``, ``apex_rt``,
    ``intensity`` and optionally ``width`` (Gaussian sigma, min).
    """
    def _make(spectra_file, species, rt_start=0.0, rt_end=30.0):
        rts = np.arange(rt_start, rt_end + SCAN_INTERVAL / 2, SCAN_INTERVAL)
        scans = [[] for _ in rts]
        for s in species:
            traces = species_peaks(s['mass'], s['charge'], s['apex_rt'], s['intensity'], rts,
                                   width=s.get('width', 0.1))
            for scan_peaks, trace in zip(scans, traces):
                scan_peaks.extend(trace)

        scan_tuples = []
        for rt, scan_peaks in zip(rts, scans):
            mz = np.array([p[0] for p in scan_peaks], dtype=np.float64)
            intensity = np.array([p[1] for p in scan_peaks], dtype=np.float64)
            scan_tuples.append((rt, mz, intensity))
        return PeakIndex.from_scans(spectra_file, scan_tuples)
    return _make


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
