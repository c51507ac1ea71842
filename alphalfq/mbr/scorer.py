"""
Match-between-runs scoring for one acceptor run.

An ``MbrScorer`` holds the reference distributions of one acceptor run, taken
from its MS/MS-identified peaks, plus per-donor-run distributions registered
with ``add_donor_file``. It turns an MBR candidate peak into four sub-scores
in [0, 1]:

- ppm: two-tailed normal tail probability of the apex mass error
- retention time: two-tailed normal tail probability of the apex RT deviation
  from the predicted RT, using the RT alignment residuals of the donor run
- intensity: two-tailed normal tail probability of the donor → acceptor log2
  fold change, or the normal CDF of the log2 intensity when no fold-change
  distribution is known for the donor run
- scan count: smoothed empirical CDF, (rank + 1) / (n_reference + 1), of the
  candidate's scan count among the acceptor's MS/MS peak scan counts; 0 only
  for a candidate without envelopes

All reference distributions are fitted robustly (median, 1.4826 × MAD) and
their widths are floored by ``LfqParams``.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from scipy.stats import norm

from alphalfq.constants import MAD_TO_SIGMA
from alphalfq.data import SpectraFileInfo
from alphalfq.exceptions import UsageError
from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.mbr.rt_alignment import RtAlignment, paired_msms_peaks
from alphalfq.params import LfqParams

logger = logging.getLogger(__name__)


def fit_robust_normal(values, min_sigma: float):
    """Frozen ``scipy.stats.norm`` from median and scaled MAD, or None if empty.

    Non-finite values are ignored. The standard deviation is at least
    ``min_sigma``.
    """
    values = np.asarray(values, dtype=np.float64)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return None
    median = float(np.median(values))
    sigma = MAD_TO_SIGMA * float(np.median(np.abs(values - median)))
    return norm(loc=median, scale=max(sigma, min_sigma))


def two_tailed_score(distribution, value: float) -> float:
    """Probability of a deviation from the mean at least as large as ``value``'s."""
    mean = distribution.mean()
    return float(min(1.0, 2.0 * distribution.sf(mean + abs(value - mean))))


def log_fold_change_distribution(
    donor_peaks: List[ChromatographicPeak],
    acceptor_peaks: List[ChromatographicPeak],
    params: LfqParams,
):
    """Distribution of log2(acceptor / donor) intensity over shared MSMS peaks.

    Returns None if fewer than ``params.min_rt_anchors`` peptides are shared.
    """
    ratios = [
        np.log2(acceptor.intensity / donor.intensity)
        for donor, acceptor in paired_msms_peaks(donor_peaks, acceptor_peaks)
        if donor.intensity > 0 and acceptor.intensity > 0
    ]
    if len(ratios) < params.min_rt_anchors:
        return None
    return fit_robust_normal(ratios, params.min_log_intensity_sigma)


@dataclass
class DonorFileModel:
    """What the scorer knows about one donor run."""

    rt_alignment: RtAlignment
    log_fold_change: Optional[object] = None  # frozen scipy.stats.norm


class MbrScorer:
    """Scoring context of one acceptor run.

    Args:
        acceptor_file: Run the MBR candidates are searched in
        ppm_distribution: Normal distribution of MSMS peak mass errors (ppm)
        log_intensity_distribution: Normal distribution of MSMS peak log2
            intensities, or None if the run has no quantified MSMS peaks
        scan_counts: Envelope counts of the MSMS peaks
        params: Parameters

    Examples:
        >>> scorer = MbrScorer.from_acceptor_peaks(acceptor_file, acceptor_peaks, params)
        >>> scorer.add_donor_file(donor_file, alignment, fold_change)
        >>> candidate.calculate_mbr_score(scorer, donor_peak)
    """

    def __init__(
        self,
        acceptor_file: SpectraFileInfo,
        ppm_distribution,
        log_intensity_distribution,
        scan_counts: np.ndarray,
        params: LfqParams,
    ):
        self.acceptor_file = acceptor_file
        self.ppm_distribution = ppm_distribution
        self.log_intensity_distribution = log_intensity_distribution
        self.scan_counts = np.sort(np.asarray(scan_counts, dtype=np.int64))
        self.params = params
        self._donor_files: Dict[SpectraFileInfo, DonorFileModel] = {}

    @classmethod
    def from_acceptor_peaks(
        cls,
        acceptor_file: SpectraFileInfo,
        acceptor_peaks: List[ChromatographicPeak],
        params: LfqParams,
    ) -> 'MbrScorer':
        """Fit the acceptor reference distributions from its MSMS peaks.

        Only MSMS peaks of ``acceptor_file`` with an apex are used. Without
        any, the ppm distribution is centred on 0 with a width of a third of
        ``params.mbr_ppm_tolerance``.
        """
        msms = [
            p for p in acceptor_peaks
            if not p.is_mbr_peak and p.apex is not None and p.spectra_file_info is acceptor_file
        ]

        ppm_distribution = fit_robust_normal([p.mass_error for p in msms], params.min_ppm_sigma)
        if ppm_distribution is None:
            logger.warning(
                f"No MSMS peaks in {acceptor_file.filename_without_extension}, "
                f"using a default mass error distribution"
            )
            ppm_distribution = norm(loc=0.0, scale=max(params.mbr_ppm_tolerance / 3.0, params.min_ppm_sigma))

        log_intensity_distribution = fit_robust_normal(
            [np.log2(p.intensity) for p in msms if p.intensity > 0],
            params.min_log_intensity_sigma,
        )
        scan_counts = np.array([p.scan_count for p in msms], dtype=np.int64)

        logger.info(
            f"✓ MBR scorer for {acceptor_file.filename_without_extension}: {len(msms):,} MSMS peaks, "
            f"ppm {ppm_distribution.mean():.2f} ± {ppm_distribution.std():.2f}"
        )
        return cls(acceptor_file, ppm_distribution, log_intensity_distribution, scan_counts, params)

    # ------------------------------------------------------------------
    # Donor runs
    # ------------------------------------------------------------------

    def add_donor_file(self, donor_file: SpectraFileInfo, rt_alignment: RtAlignment, log_fold_change=None):
        """Register the RT alignment and intensity fold change of a donor run."""
        if donor_file is self.acceptor_file:
            raise UsageError("A run cannot donate identifications to itself")
        self._donor_files[donor_file] = DonorFileModel(rt_alignment, log_fold_change)

    def has_donor_file(self, donor_file: SpectraFileInfo) -> bool:
        return donor_file in self._donor_files

    def donor_model(self, donor_file: SpectraFileInfo) -> DonorFileModel:
        try:
            return self._donor_files[donor_file]
        except KeyError:
            raise UsageError(
                f"{donor_file} was not registered as donor run of {self.acceptor_file}"
            ) from None

    def predict_retention_time(self, donor_peak: ChromatographicPeak) -> float:
        """Acceptor RT expected for the apex of a donor peak."""
        alignment = self.donor_model(donor_peak.spectra_file_info).rt_alignment
        return alignment.predict(donor_peak.apex_retention_time)

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def calculate_ppm_error_score(self, acceptor_peak: ChromatographicPeak) -> float:
        if np.isnan(acceptor_peak.mass_error):
            return 0.0
        return two_tailed_score(self.ppm_distribution, acceptor_peak.mass_error)

    def calculate_retention_time_score(
        self, acceptor_peak: ChromatographicPeak, donor_peak: ChromatographicPeak
    ) -> float:
        if acceptor_peak.apex is None or acceptor_peak.predicted_retention_time is None:
            return 0.0
        alignment = self.donor_model(donor_peak.spectra_file_info).rt_alignment
        delta_rt = acceptor_peak.apex_retention_time - acceptor_peak.predicted_retention_time
        rt_distribution = norm(loc=alignment.residual_mean, scale=alignment.residual_sigma)
        return two_tailed_score(rt_distribution, delta_rt)

    def calculate_intensity_score(
        self, acceptor_peak: ChromatographicPeak, donor_peak: ChromatographicPeak
    ) -> float:
        if not acceptor_peak.intensity > 0:
            return 0.0

        log_fold_change = self.donor_model(donor_peak.spectra_file_info).log_fold_change
        if log_fold_change is not None and donor_peak.intensity > 0:
            return two_tailed_score(log_fold_change, np.log2(acceptor_peak.intensity / donor_peak.intensity))

        if self.log_intensity_distribution is None:
            # no reference intensities in this run
            return 0.5
        return float(self.log_intensity_distribution.cdf(np.log2(acceptor_peak.intensity)))

    def calculate_scan_count_score(self, acceptor_peak: ChromatographicPeak) -> float:
        n = acceptor_peak.scan_count
        if n == 0:
            return 0.0
        if self.scan_counts.size == 0:
            return 1.0 - 1.0 / (1.0 + n)
        # smoothed rank, above 0 for peaks shorter than every reference peak
        rank = np.searchsorted(self.scan_counts, n, side='right')
        return float((rank + 1) / (self.scan_counts.size + 1))
