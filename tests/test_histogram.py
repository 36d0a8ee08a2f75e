import numpy as np
import pytest

from mesh_segmentation.histogram import (
    Histogram1D,
    Histogram2D,
    PeakInfo,
    remove_close_peaks,
    select_peaks_by_support,
)


def test_remove_repeated_and_close_peaks():
    peaks = [
        PeakInfo(0, 0.0, 10.0),
        PeakInfo(0, 0.0, 10.0),
        PeakInfo(7, 0.05, 20.0),
        PeakInfo(140, 1.0, 5.0),
    ]
    kept = remove_close_peaks(peaks, 0.1)
    assert kept == [PeakInfo(7, 0.05, 20.0), PeakInfo(140, 1.0, 5.0)]
    # Input is left untouched
    assert len(peaks) == 4


def test_remove_close_peaks_keeps_strongest_of_a_run():
    peaks = [
        PeakInfo(0, 0.0, 30.0),
        PeakInfo(5, 0.04, 10.0),
        PeakInfo(10, 0.08, 15.0),
    ]
    assert remove_close_peaks(peaks, 0.1) == [PeakInfo(0, 0.0, 30.0)]


def test_remove_close_peaks_disabled():
    peaks = [
        PeakInfo(0, 0.0, 10.0),
        PeakInfo(0, 0.0, 10.0),
        PeakInfo(7, 0.05, 20.0),
    ]
    kept = remove_close_peaks(peaks, -1)
    assert kept == [PeakInfo(0, 0.0, 10.0), PeakInfo(7, 0.05, 20.0)]


def test_kept_peaks_are_separated():
    rng = np.random.default_rng(1)
    values = np.sort(rng.uniform(0, 2, size=30))
    peaks = [
        PeakInfo(i, float(v), float(s))
        for i, (v, s) in enumerate(zip(values, rng.uniform(1, 100, size=30)))
    ]
    kept = remove_close_peaks(peaks, 0.1)
    assert kept
    for a, b in zip(kept, kept[1:]):
        assert abs(b.value - a.value) >= 0.1


def test_select_peaks_by_support():
    a = PeakInfo(0, 0.0, 5.0)
    b = PeakInfo(1, 1.0, 7.0)
    c = PeakInfo(2, 2.0, 7.0)
    assert select_peaks_by_support([a, b, c], 2) == [b, c]
    # Ties go to the earlier peak
    assert select_peaks_by_support([a, b, c], 1) == [b]
    assert select_peaks_by_support([a, b, c], 10) == [b, c, a]
    assert select_peaks_by_support([], 3) == []


def test_histogram_1d_peaks():
    z_hist = Histogram1D(512, (-0.75, 3.0))
    values = np.concatenate([np.zeros(200), np.ones(100)])
    z_hist.calculate(values)
    assert z_hist.hist.sum() == 300

    peaks = z_hist.get_local_maximum(5, 3, 0.1, 10)
    assert [peak.value for peak in peaks] == [
        pytest.approx(0.0, abs=0.01),
        pytest.approx(1.0, abs=0.01),
    ]
    assert peaks[0].support > peaks[1].support

    # A stricter peak_per removes the weaker peak
    peaks = z_hist.get_local_maximum(5, 3, 0.9, 10)
    assert len(peaks) == 1
    # So does a higher support threshold
    assert len(z_hist.get_local_maximum(5, 3, 0.1, 50)) == 1


def test_histogram_1d_ignores_out_of_range():
    z_hist = Histogram1D(10, (0.0, 1.0))
    z_hist.calculate([-5.0, 0.5, 7.0])
    assert z_hist.hist.sum() == 1


def test_histogram_1d_empty():
    z_hist = Histogram1D(512, (-0.75, 3.0))
    z_hist.calculate([])
    assert z_hist.get_local_maximum(5, 3, 0.5, 1) == []


def test_histogram_2d_peaks():
    hist_2d = Histogram2D((40, 40), (0.0, np.pi), (-6.0, 6.0))
    samples = [(1.6, 2.05)] * 50 + [(0.3, -1.0)] * 30
    hist_2d.calculate(samples)
    assert hist_2d.hist.sum() == 80

    peaks = hist_2d.get_local_maximum(3, 2, 5, 5)
    assert len(peaks) == 2
    strongest, weakest = peaks
    assert strongest.support > weakest.support
    assert strongest.x_value == pytest.approx(1.6, abs=np.pi / 40)
    assert strongest.y_value == pytest.approx(2.05, abs=0.3)
    assert weakest.x_value == pytest.approx(0.3, abs=np.pi / 40)
    assert weakest.y_value == pytest.approx(-1.0, abs=0.3)


def test_histogram_2d_bounds():
    hist_2d = Histogram2D((40, 40), (0.0, np.pi), (-6.0, 6.0))
    samples = [(1.6, 2.05)] * 50 + [(0.3, -1.0)] * 30 + [(2.5, 4.0)] * 40
    hist_2d.calculate(samples)
    assert len(hist_2d.get_local_maximum(3, 2, 5, 5)) == 2
    assert len(hist_2d.get_local_maximum(3, 1, 5, 5)) == 1
    # Weaker maxima fall under min_support
    assert len(hist_2d.get_local_maximum(3, 3, 12, 5)) == 1


def test_histogram_2d_min_distance():
    hist_2d = Histogram2D((40, 40), (0.0, np.pi), (-6.0, 6.0))
    # Two clusters three bins apart along theta
    step = np.pi / 40
    samples = [(20.5 * step, 0.15)] * 50 + [(23.5 * step, 0.15)] * 30
    hist_2d.calculate(samples)
    assert len(hist_2d.get_local_maximum(3, 2, 5, 2)) == 2
    peaks = hist_2d.get_local_maximum(3, 2, 5, 5)
    assert len(peaks) == 1
    assert peaks[0].pos == (20, 20)
