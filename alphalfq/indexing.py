"""In-memory MS1 peak index.

Stores every centroid of an LC-MS run in one flat array, sorted by scan and by
m/z within each scan, with per-scan offsets. Lookups combine direct indexing by
scan with a binary search on the scan's m/z slice, so finding the closest peak
to a target m/z is O(log n) per scan.

Raw file reading is done elsewhere; this index is built from arrays.
"""

from typing import List, Optional, Sequence, Tuple

import numba as nb
import numpy as np

from alphalfq.data import IndexedPeak, SpectraFileInfo


@nb.njit
def binary_search_mz_range(
    mz_array: np.ndarray,
    start: int,
    end: int,
    target_mz: float,
    ppm_tolerance: float
) -> Tuple[int, int]:
    """Find the index range in ``mz_array[start:end]`` matching target m/z.

    Parameters
    ----------
    mz_array : np.ndarray
        Array of m/z values, sorted ascending within ``[start, end)``
    start, end : int
        Slice of ``mz_array`` belonging to one scan
    target_mz : float
        Target m/z to search for
    ppm_tolerance : float
        Tolerance in parts per million

    Returns
    -------
    lo : int
        First matching index (inclusive)
    hi : int
        Last matching index (exclusive, Python convention)
    """
    if end <= start or target_mz <= 0:
        return start, start

    mz_tol = target_mz * ppm_tolerance / 1e6
    low_mz = target_mz - mz_tol
    high_mz = target_mz + mz_tol

    left, right = start, end
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] < low_mz:
            left = mid + 1
        else:
            right = mid
    lo = left

    left, right = lo, end
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] <= high_mz:
            left = mid + 1
        else:
            right = mid

    return lo, left


@nb.njit
def find_closest_peak(
    mz_array: np.ndarray,
    scan_offsets: np.ndarray,
    scan_index: int,
    target_mz: float,
    ppm_tolerance: float
) -> int:
    """Index of the peak closest to ``target_mz`` in one scan, or -1."""
    if scan_index < 0 or scan_index >= scan_offsets.size - 1:
        return -1

    lo, hi = binary_search_mz_range(
        mz_array, scan_offsets[scan_index], scan_offsets[scan_index + 1],
        target_mz, ppm_tolerance
    )

    best_idx = -1
    best_diff = np.inf
    for i in range(lo, hi):
        diff = abs(mz_array[i] - target_mz)
        if diff < best_diff:
            best_diff = diff
            best_idx = i

    return best_idx


class PeakIndex:
    """Indexed MS1 peaks of one LC-MS run.

    Parameters
    ----------
    spectra_file : SpectraFileInfo
        Run the peaks belong to
    mz_array, intensity_array : np.ndarray
        Flat centroid arrays
    scan_array : np.ndarray
        Zero-based MS1 scan index of each centroid
    retention_times : np.ndarray
        Retention time (minutes) of each MS1 scan, ascending
    scan_numbers : np.ndarray, optional
        One-based instrument scan number of each MS1 scan

    Examples
    --------
    >>> index = PeakIndex(file_info, mz, intensity, scan, rts)
    >>> peak = index.get_peak(650.3312, scan_index=120, ppm_tolerance=10.0)
    """

    def __init__(
        self,
        spectra_file: SpectraFileInfo,
        mz_array: np.ndarray,
        intensity_array: np.ndarray,
        scan_array: np.ndarray,
        retention_times: np.ndarray,
        scan_numbers: Optional[np.ndarray] = None,
    ):
        mz_array = np.asarray(mz_array, dtype=np.float64)
        intensity_array = np.asarray(intensity_array, dtype=np.float64)
        scan_array = np.asarray(scan_array, dtype=np.int64)
        retention_times = np.asarray(retention_times, dtype=np.float64)

        if not (mz_array.size == intensity_array.size == scan_array.size):
            raise ValueError("mz, intensity and scan arrays must have the same length")
        if retention_times.size > 1 and np.any(np.diff(retention_times) < 0):
            raise ValueError("retention_times must be sorted ascending")

        n_scans = retention_times.size
        if scan_array.size and (scan_array.min() < 0 or scan_array.max() >= n_scans):
            raise ValueError(f"scan indices must be within [0, {n_scans})")

        # Sort by scan, then m/z
        order = np.lexsort((mz_array, scan_array))
        self.mz_array = mz_array[order]
        self.intensity_array = intensity_array[order]
        self.scan_array = scan_array[order]

        counts = np.bincount(self.scan_array, minlength=n_scans)
        self.scan_offsets = np.zeros(n_scans + 1, dtype=np.int64)
        np.cumsum(counts, out=self.scan_offsets[1:])

        self.spectra_file = spectra_file
        self.retention_times = retention_times
        if scan_numbers is None:
            scan_numbers = np.arange(1, n_scans + 1, dtype=np.int64)
        self.scan_numbers = np.asarray(scan_numbers, dtype=np.int64)

    @classmethod
    def from_scans(
        cls,
        spectra_file: SpectraFileInfo,
        scans: Sequence[Tuple[float, np.ndarray, np.ndarray]],
    ) -> 'PeakIndex':
        """Build an index from ``(retention_time, mz, intensity)`` per scan."""
        mz_parts: List[np.ndarray] = []
        intensity_parts: List[np.ndarray] = []
        scan_parts: List[np.ndarray] = []
        rts = np.zeros(len(scans), dtype=np.float64)

        for i, (rt, mz, intensity) in enumerate(scans):
            mz = np.asarray(mz, dtype=np.float64)
            rts[i] = rt
            mz_parts.append(mz)
            intensity_parts.append(np.asarray(intensity, dtype=np.float64))
            scan_parts.append(np.full(mz.size, i, dtype=np.int64))

        if mz_parts:
            mz_all = np.concatenate(mz_parts)
            intensity_all = np.concatenate(intensity_parts)
            scan_all = np.concatenate(scan_parts)
        else:
            mz_all = np.zeros(0)
            intensity_all = np.zeros(0)
            scan_all = np.zeros(0, dtype=np.int64)

        return cls(spectra_file, mz_all, intensity_all, scan_all, rts)

    @property
    def n_scans(self) -> int:
        return self.retention_times.size

    def __len__(self):
        return self.mz_array.size

    def get_peak(self, mz: float, scan_index: int, ppm_tolerance: float) -> Optional[IndexedPeak]:
        """Closest peak to ``mz`` within tolerance in one MS1 scan, or None."""
        idx = find_closest_peak(self.mz_array, self.scan_offsets, scan_index, mz, ppm_tolerance)
        if idx < 0:
            return None
        return self.peak_at(idx)

    def get_peaks_in_window(
        self, mz: float, ppm_tolerance: float, rt_start: float, rt_end: float
    ) -> List[IndexedPeak]:
        """All peaks within an m/z tolerance and retention time window."""
        first, last = self.scan_range_for_rt_window(rt_start, rt_end)
        peaks = []
        for scan_index in range(first, last):
            lo, hi = binary_search_mz_range(
                self.mz_array, self.scan_offsets[scan_index], self.scan_offsets[scan_index + 1],
                mz, ppm_tolerance
            )
            peaks.extend(self.peak_at(i) for i in range(lo, hi))
        return peaks

    def scan_index_for_rt(self, rt: float) -> int:
        """Zero-based index of the MS1 scan closest in time to ``rt``."""
        if self.n_scans == 0:
            return -1
        pos = int(np.searchsorted(self.retention_times, rt))
        if pos == 0:
            return 0
        if pos >= self.n_scans:
            return self.n_scans - 1
        if rt - self.retention_times[pos - 1] <= self.retention_times[pos] - rt:
            return pos - 1
        return pos

    def scan_range_for_rt_window(self, rt_start: float, rt_end: float) -> Tuple[int, int]:
        """``[first, last)`` scan indices with ``rt_start <= rt <= rt_end``."""
        first = int(np.searchsorted(self.retention_times, rt_start, side='left'))
        last = int(np.searchsorted(self.retention_times, rt_end, side='right'))
        return first, last

    def peak_at(self, idx: int) -> IndexedPeak:
        scan_index = int(self.scan_array[idx])
        return IndexedPeak(
            mz=float(self.mz_array[idx]),
            intensity=float(self.intensity_array[idx]),
            zero_based_ms1_scan_index=scan_index,
            retention_time=float(self.retention_times[scan_index]),
            one_based_scan_number=int(self.scan_numbers[scan_index]),
        )
