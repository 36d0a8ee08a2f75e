"""
Vote accumulators for plane segmentation.

Histogram1D collects heights of horizontal triangles, Histogram2D collects
(theta, distance) pairs of vertical triangles. Both are rebuilt from scratch
on every call to calculate().
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.ndimage import gaussian_filter, gaussian_filter1d, maximum_filter
from scipy.signal import find_peaks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakInfo:
    pos: int
    value: float
    support: float


@dataclass(frozen=True)
class PeakInfo2D:
    pos: tuple
    x_value: float
    y_value: float
    support: float


def gaussian_sigma(kernel_size):
    """Sigma used by OpenCV's GaussianBlur when only the kernel size is given."""
    return 0.3 * ((kernel_size - 1) * 0.5 - 1) + 0.8


def _bin_centers(edges):
    return (edges[:-1] + edges[1:]) / 2


class Histogram1D:
    def __init__(self, bins, value_range):
        self.bins = int(bins)
        self.value_range = (float(value_range[0]), float(value_range[1]))
        self.edges = np.linspace(*self.value_range, self.bins + 1)
        self.bin_centers = _bin_centers(self.edges)
        self.hist = np.zeros(self.bins)
        self.smoothed = np.zeros(self.bins)

    def calculate(self, values):
        """Recompute the histogram from scratch. Out of range values are ignored."""
        values = np.asarray(values, dtype=np.float64).ravel()
        self.hist, _ = np.histogram(values, bins=self.edges)
        self.hist = self.hist.astype(np.float64)
        self.smoothed = self.hist.copy()
        return self.hist

    def get_local_maximum(self, kernel_size, window_size, peak_per, min_support):
        """
        Smooth the histogram and extract its peaks.

        Args:
            kernel_size: Gaussian kernel size (odd)
            window_size: Min distance in bins between two peaks
            peak_per: Peaks lower than peak_per * highest peak are dropped
            min_support: Min smoothed vote count of a peak

        Returns:
            peaks: List of PeakInfo ordered by bin
        """
        sigma = gaussian_sigma(kernel_size)
        radius = (kernel_size - 1) // 2
        self.smoothed = gaussian_filter1d(
            self.hist, sigma, mode="mirror", truncate=radius / sigma
        )

        positions, _ = find_peaks(
            self.smoothed, height=min_support, distance=window_size
        )
        if len(positions) == 0:
            return []

        highest = self.smoothed[positions].max()
        peaks = [
            PeakInfo(int(pos), float(self.bin_centers[pos]), float(self.smoothed[pos]))
            for pos in positions
            if self.smoothed[pos] >= peak_per * highest
        ]
        logger.debug("1D histogram: %d peaks (highest %.1f)", len(peaks), highest)
        return peaks


class Histogram2D:
    def __init__(self, bins, x_range, y_range):
        self.bins = (int(bins[0]), int(bins[1]))
        self.x_edges = np.linspace(x_range[0], x_range[1], self.bins[0] + 1)
        self.y_edges = np.linspace(y_range[0], y_range[1], self.bins[1] + 1)
        self.x_centers = _bin_centers(self.x_edges)
        self.y_centers = _bin_centers(self.y_edges)
        self.hist = np.zeros(self.bins)
        self.smoothed = np.zeros(self.bins)

    def calculate(self, points):
        """
        Recompute the histogram from scratch.

        Args:
            points: (N, 2) array of (x, y) samples, out of range ones are ignored
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        self.hist, _, _ = np.histogram2d(
            points[:, 0], points[:, 1], bins=[self.x_edges, self.y_edges]
        )
        self.smoothed = self.hist.copy()
        return self.hist

    def get_local_maximum(
        self, kernel_size, nr_of_local_max, min_support, min_dist_btw_local_max
    ):
        """
        Strongest local maxima of the smoothed histogram.

        Candidates are visited by decreasing support and kept only when they
        are at least min_dist_btw_local_max bins away from every kept peak.

        Returns:
            peaks: List of PeakInfo2D, at most nr_of_local_max, strongest first
        """
        sigma = gaussian_sigma(kernel_size)
        radius = (kernel_size - 1) // 2
        self.smoothed = gaussian_filter(
            self.hist, sigma, mode="mirror", truncate=radius / sigma
        )

        local_max = maximum_filter(self.smoothed, size=3, mode="constant", cval=-np.inf)
        mask = (
            (self.smoothed == local_max)
            & (self.smoothed >= min_support)
            & (self.smoothed > 0)
        )
        candidates = np.argwhere(mask)
        if len(candidates) == 0:
            return []

        supports = self.smoothed[mask]
        order = np.argsort(-supports, kind="stable")

        peaks = []
        for idx in order:
            if len(peaks) >= nr_of_local_max:
                break
            i, j = candidates[idx]
            too_close = any(
                np.hypot(i - peak.pos[0], j - peak.pos[1]) < min_dist_btw_local_max
                for peak in peaks
            )
            if too_close:
                continue
            peaks.append(
                PeakInfo2D(
                    (int(i), int(j)),
                    float(self.x_centers[i]),
                    float(self.y_centers[j]),
                    float(supports[idx]),
                )
            )

        logger.debug(
            "2D histogram: %d local maxima, %d peaks kept", len(candidates), len(peaks)
        )
        return peaks


def remove_close_peaks(peaks, min_separation):
    """
    Drop repeated peaks and, among peaks closer than min_separation, keep the
    one with the largest support.

    Args:
        peaks: PeakInfo ordered by value
        min_separation: Min distance between peak values, < 0 disables

    Returns:
        kept: New list of PeakInfo, input is not modified
    """
    separation_enabled = min_separation >= 0
    kept = []
    for peak in peaks:
        outcome = "keep"
        while kept:
            previous = kept[-1]
            if peak == previous:
                outcome = "drop"
                logger.warning("Deleting repeated peak in bin %d", peak.pos)
            elif (
                separation_enabled
                and abs(previous.value - peak.value) < min_separation
            ):
                if previous.support < peak.support:
                    logger.warning("Deleting peak in bin %d", previous.pos)
                    kept.pop()
                    continue
                outcome = "drop"
                logger.warning("Deleting too close peak in bin %d", peak.pos)
            break
        if outcome == "keep":
            kept.append(peak)
    return kept


def select_peaks_by_support(peaks, max_number_of_peaks):
    """
    Greedily take up to max_number_of_peaks peaks with the largest support.

    Ties go to the first peak in input order.
    """
    remaining = list(peaks)
    selected = []
    for _ in range(max_number_of_peaks):
        if not remaining:
            logger.debug("No more peaks available.")
            break
        best = max(range(len(remaining)), key=lambda k: remaining[k].support)
        selected.append(remaining.pop(best))
    return selected
