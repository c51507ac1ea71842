"""
Donor → acceptor retention time alignment for match-between-runs.

Peptides quantified by MS/MS in both runs ("anchors") define a monotone
mapping from donor RT to acceptor RT:

- MAD-based robust outlier removal around a first-pass linear fit
- Fritsch-Carlson PCHIP through binned anchor medians, with Hyman endpoint
  filter (monotone-preserving)
- Linear tails outside the anchor range, continuing the slope of the
  outermost knot interval

The residuals of the anchors against the fitted curve give the run-to-run RT
error distribution used by the MBR retention time score.

Example
-------
>>> alignment = RtAlignment.fit(donor_rts, acceptor_rts, params)
>>> predicted = alignment.predict(12.4)
>>> alignment.residual_mean, alignment.residual_sigma
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from numba import njit

from alphalfq.constants import MAD_TO_SIGMA
from alphalfq.features.chromatographic_peak import ChromatographicPeak
from alphalfq.params import LfqParams

logger = logging.getLogger(__name__)


# ========== Numba utilities ==========

@njit
def _median(a):
    """Compute median (Numba-optimized)."""
    b = a.copy()
    b.sort()
    n = b.size
    mid = n // 2
    if n % 2 == 1:
        return b[mid]
    else:
        return 0.5 * (b[mid-1] + b[mid])


@njit
def _mad(a):
    """Median absolute deviation with a small epsilon."""
    med = _median(a)
    return _median(np.abs(a - med)) + 1e-12


@njit
def _linear_fit(x, y):
    """Ordinary least squares y = a*x + b (closed form)."""
    n = x.size
    sx = 0.0
    sy = 0.0
    sxx = 0.0
    sxy = 0.0
    for i in range(n):
        sx += x[i]
        sy += y[i]
        sxx += x[i]*x[i]
        sxy += x[i]*y[i]
    den = n*sxx - sx*sx
    if abs(den) < 1e-24:
        return 0.0, sy / n
    a = (n*sxy - sx*sy) / den
    return a, (sy - a*sx) / n


@njit
def _collapse_duplicates(x, y, tol):
    """Average runs of sorted x closer than ``tol`` (x must be sorted)."""
    n = x.size
    gx = np.empty(n, dtype=np.float64)
    gy = np.empty(n, dtype=np.float64)
    if n == 0:
        return gx, gy

    g = 0
    sum_x = x[0]
    sum_y = y[0]
    cnt = 1
    for i in range(1, n):
        if x[i] - x[i-1] <= tol:
            sum_x += x[i]
            sum_y += y[i]
            cnt += 1
        else:
            gx[g] = sum_x / cnt
            gy[g] = sum_y / cnt
            g += 1
            sum_x = x[i]
            sum_y = y[i]
            cnt = 1
    gx[g] = sum_x / cnt
    gy[g] = sum_y / cnt
    g += 1

    return gx[:g], gy[:g]


@njit
def _bin_medians(x, y, points_per_bin):
    """Medians of consecutive bins of sorted (x, y) pairs.

    At least two bins are formed whenever there are two points.
    """
    n = x.size
    n_bins = n // points_per_bin
    if n_bins < 2:
        n_bins = min(n, 2)

    bx = np.empty(n_bins, dtype=np.float64)
    by = np.empty(n_bins, dtype=np.float64)
    for b in range(n_bins):
        start = (b * n) // n_bins
        end = ((b + 1) * n) // n_bins
        bx[b] = _median(x[start:end])
        by[b] = _median(y[start:end])
    return bx, by


@njit
def _secants(x, y):
    """Slopes between consecutive points."""
    m = x.size - 1
    out = np.empty(m, dtype=np.float64)
    for i in range(m):
        dx = x[i+1] - x[i]
        out[i] = 0.0 if dx <= 1e-18 else (y[i+1] - y[i]) / dx
    return out


@njit
def _pchip_slopes(x, y):
    """Fritsch-Carlson slopes with Hyman endpoint filter."""
    n = x.size
    m = np.zeros(n, dtype=np.float64)

    if n == 1:
        return m
    if n == 2:
        s = (y[1]-y[0]) / (x[1]-x[0])
        m[0] = s
        m[1] = s
        return m

    h = np.empty(n-1, dtype=np.float64)
    d = np.empty(n-1, dtype=np.float64)
    for i in range(n-1):
        h[i] = x[i+1]-x[i]
        d[i] = (y[i+1]-y[i]) / h[i]

    for i in range(1, n-1):
        if d[i-1]*d[i] > 0.0:
            w1 = 2.0*h[i] + h[i-1]
            w2 = h[i] + 2.0*h[i-1]
            m[i] = (w1 + w2) / (w1/d[i-1] + w2/d[i])

    m0 = ((2.0*h[0] + h[1])*d[0] - h[0]*d[1]) / (h[0] + h[1])
    if np.sign(m0) != np.sign(d[0]):
        m0 = 0.0
    elif (np.sign(d[0]) != np.sign(d[1])) and (abs(m0) > 3.0*abs(d[0])):
        m0 = 3.0*d[0]

    mn = ((2.0*h[n-2] + h[n-3])*d[n-2] - h[n-2]*d[n-3]) / (h[n-3] + h[n-2])
    if np.sign(mn) != np.sign(d[n-2]):
        mn = 0.0
    elif (np.sign(d[n-2]) != np.sign(d[n-3])) and (abs(mn) > 3.0*abs(d[n-2])):
        mn = 3.0*d[n-2]

    m[0] = m0
    m[n-1] = mn
    return m


@njit
def _evaluate(x, y, m, m_left, m_right, query):
    """PCHIP inside the anchor range, linear tails outside."""
    n = x.size
    out = np.empty(query.size, dtype=np.float64)

    for q in range(query.size):
        z = query[q]
        if n == 1:
            out[q] = y[0] + (z - x[0])
        elif z <= x[0]:
            out[q] = y[0] + m_left * (z - x[0])
        elif z >= x[n-1]:
            out[q] = y[n-1] + m_right * (z - x[n-1])
        else:
            # interval with x[i] <= z < x[i+1]
            i = np.searchsorted(x, z, side='right') - 1
            hi = x[i+1] - x[i]
            t = (z - x[i]) / hi
            t2 = t*t
            t3 = t2*t
            out[q] = ((2.0*t3 - 3.0*t2 + 1.0)*y[i] + (t3 - 2.0*t2 + t)*hi*m[i]
                      + (-2.0*t3 + 3.0*t2)*y[i+1] + (t3 - t2)*hi*m[i+1])

    return out


@njit
def fit_pchip_alignment(donor_rt, acceptor_rt, dedup_tol=1e-4, mad_k=3.5, tail_k=1,
                        max_knots=20, min_points_per_knot=3):
    """Fit a robust monotone donor RT → acceptor RT curve.

    Knots are medians of consecutive anchor bins, so the curve smooths the
    anchors instead of interpolating them and the anchor residuals measure
    the run-to-run RT scatter.

    Parameters
    ----------
    donor_rt, acceptor_rt : ndarray
        Apex retention times (minutes) of the anchors in both runs
    dedup_tol : float
        Donor RTs closer than this are averaged before binning
    mad_k : float
        Outlier threshold in MAD units of the linear-fit residuals
    tail_k : int
        Number of outermost knot secants whose median is the tail slope
    max_knots : int
        Upper bound on the number of knots for large anchor sets
    min_points_per_knot : int
        Smallest bin size

    Returns
    -------
    (x, y, m, m_left, m_right, keep) : tuple
        Knots, PCHIP slopes, tail slopes and the inlier mask over the input
    """
    keep = np.ones(donor_rt.size, dtype=np.bool_)
    if donor_rt.size == 0:
        return np.zeros(0), np.zeros(0), np.zeros(0), 1.0, 1.0, keep

    a, b = _linear_fit(donor_rt, acceptor_rt)
    res = acceptor_rt - (a*donor_rt + b)
    keep = np.abs(res - _median(res)) <= max(mad_k * _mad(res), 1e-6)

    order = np.argsort(donor_rt[keep])
    x = donor_rt[keep][order]
    y = acceptor_rt[keep][order]
    x, y = _collapse_duplicates(x, y, dedup_tol)
    points_per_knot = max(min_points_per_knot, x.size // max_knots)
    x, y = _bin_medians(x, y, points_per_knot)

    m = _pchip_slopes(x, y)

    sec = _secants(x, y)
    k = min(tail_k, sec.size)
    if k == 0:
        m_left = 1.0
        m_right = 1.0
    else:
        m_left = max(_median(sec[:k]), 1e-12)
        m_right = max(_median(sec[sec.size - k:]), 1e-12)

    return x, y, m, m_left, m_right, keep


@dataclass
class RtAlignment:
    """Fitted donor → acceptor RT mapping with its residual distribution."""

    knots_x: np.ndarray
    knots_y: np.ndarray
    slopes: np.ndarray
    slope_left: float
    slope_right: float
    residual_mean: float
    residual_sigma: float
    n_anchors: int

    @classmethod
    def fit(cls, donor_rts: np.ndarray, acceptor_rts: np.ndarray, params: LfqParams) -> 'RtAlignment':
        """Fit from paired anchor retention times.

        With fewer than ``params.min_rt_anchors`` anchors the curve falls
        back to a constant shift (median RT difference, 0 without anchors)
        and a residual sigma of ``params.mbr_rt_window``.
        """
        donor_rts = np.asarray(donor_rts, dtype=np.float64)
        acceptor_rts = np.asarray(acceptor_rts, dtype=np.float64)
        if donor_rts.size != acceptor_rts.size:
            raise ValueError("donor_rts and acceptor_rts must have the same length")

        n = donor_rts.size
        if n == 0 or n < params.min_rt_anchors:
            shift = float(np.median(acceptor_rts - donor_rts)) if n > 0 else 0.0
            logger.warning(
                f"Only {n} RT anchors (< {params.min_rt_anchors}), using constant shift {shift:.3f} min"
            )
            return cls.constant_shift(shift, params.mbr_rt_window, n)

        x, y, m, m_left, m_right, keep = fit_pchip_alignment(donor_rts, acceptor_rts)

        alignment = cls(x, y, m, float(m_left), float(m_right), 0.0, 0.0, n)
        residuals = acceptor_rts[keep] - alignment.predict(donor_rts[keep])
        mad = float(np.median(np.abs(residuals - np.median(residuals))))
        alignment.residual_mean = float(np.median(residuals))
        alignment.residual_sigma = max(MAD_TO_SIGMA * mad, params.min_rt_sigma)
        return alignment

    @classmethod
    def constant_shift(cls, shift: float, sigma: float, n_anchors: int = 0) -> 'RtAlignment':
        """Alignment that adds ``shift`` to every donor RT."""
        return cls(
            knots_x=np.array([0.0]),
            knots_y=np.array([shift]),
            slopes=np.zeros(1),
            slope_left=1.0,
            slope_right=1.0,
            residual_mean=0.0,
            residual_sigma=float(sigma),
            n_anchors=n_anchors,
        )

    def predict(self, donor_rt):
        """Predicted acceptor RT for a scalar or array of donor RTs."""
        query = np.atleast_1d(np.asarray(donor_rt, dtype=np.float64))
        out = _evaluate(self.knots_x, self.knots_y, self.slopes, self.slope_left, self.slope_right, query)
        if np.ndim(donor_rt) == 0:
            return float(out[0])
        return out


def paired_msms_peaks(
    donor_peaks: List[ChromatographicPeak],
    acceptor_peaks: List[ChromatographicPeak],
) -> List[Tuple[ChromatographicPeak, ChromatographicPeak]]:
    """(donor, acceptor) MSMS peaks of modified sequences quantified in both runs.

    Only unambiguous MSMS peaks (one modified sequence) with an apex are
    used; when a sequence has several peaks in a run, the most intense one
    is taken.
    """
    donor = _best_peak_by_sequence(donor_peaks)
    acceptor = _best_peak_by_sequence(acceptor_peaks)
    return [(donor[seq], acceptor[seq]) for seq in donor if seq in acceptor]


def anchor_retention_times(
    donor_peaks: List[ChromatographicPeak],
    acceptor_peaks: List[ChromatographicPeak],
) -> Tuple[np.ndarray, np.ndarray]:
    """Paired apex RTs (donor, acceptor) of the shared MSMS peaks."""
    pairs = paired_msms_peaks(donor_peaks, acceptor_peaks)
    donor_rts = np.array([d.apex_retention_time for d, _ in pairs], dtype=np.float64)
    acceptor_rts = np.array([a.apex_retention_time for _, a in pairs], dtype=np.float64)
    return donor_rts, acceptor_rts


def _best_peak_by_sequence(peaks: List[ChromatographicPeak]) -> Dict[str, ChromatographicPeak]:
    best: Dict[str, ChromatographicPeak] = {}
    for peak in peaks:
        if peak.is_mbr_peak or peak.apex is None or peak.num_identifications_by_full_seq != 1:
            continue
        seq = peak.identifications[0].modified_sequence
        if seq not in best or peak.intensity > best[seq].intensity:
            best[seq] = peak
    return best
