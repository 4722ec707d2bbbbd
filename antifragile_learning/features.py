"""
Statistical feature extraction over raw signal windows.

Every function here is pure: a numeric sequence goes in, numbers or a
plain dict come out. Degenerate input (empty, constant, too short) never
raises; it yields 0, None, or the neutral value documented on the
function.

Cost warning: approximate_entropy is O(n^2) and autocorrelation is
O(n * max_lag). Nothing here caps the window. Bound it before calling,
or pass ``max_window`` to compute_features.
"""

import math
import time
from typing import Iterable, List, Optional

import numpy as np

HISTOGRAM_BINS = 20
DEFAULT_ACF_THRESHOLD = 0.2
SEASONALITY_THRESHOLD = 0.3
TRIM_PROPORTION = 0.1
PERSISTENCE_LAGS = (2, 4, 8, 16)


def _as_array(signal: Iterable[float]) -> np.ndarray:
    if not isinstance(signal, np.ndarray):
        signal = list(signal)
    return np.asarray(signal, dtype=float).ravel()


def _safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator


def _sample_std(x: np.ndarray) -> float:
    """Standard deviation with the n-1 denominator; 0 below two samples."""
    if len(x) < 2:
        return 0.0
    return float(np.std(x, ddof=1))


# ================================================================
# DESCRIPTIVE STATISTICS
# ================================================================


def quantile(sorted_values, p: float) -> float:
    """Linear-interpolation quantile of an already sorted sequence.

    Index p*(n-1) is split into floor and ceil neighbours and blended.
    Returns 0.0 for an empty sequence.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    index = p * (n - 1)
    lower = int(math.floor(index))
    upper = int(math.ceil(index))
    if lower == upper:
        return float(sorted_values[lower])
    weight = index - lower
    return float(sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight)


def mode(signal) -> Optional[float]:
    """Most frequent value after rounding to 3 decimals.

    Ties go to the value that reached the winning count first.
    """
    frequency = {}
    best, best_count = None, 0
    for v in _as_array(signal):
        key = round(float(v), 3)
        frequency[key] = frequency.get(key, 0) + 1
        if frequency[key] > best_count:
            best_count = frequency[key]
            best = key
    return best


def median_absolute_deviation(signal, median: Optional[float] = None) -> float:
    x = _as_array(signal)
    if len(x) == 0:
        return 0.0
    if median is None:
        median = quantile(np.sort(x), 0.5)
    return quantile(np.sort(np.abs(x - median)), 0.5)


def trimmed_mean(sorted_values, proportion: float = TRIM_PROPORTION) -> float:
    """Mean after dropping floor(n * proportion) values from each end."""
    n = len(sorted_values)
    k = int(math.floor(n * proportion))
    kept = np.asarray(sorted_values, dtype=float)[k : n - k]
    if len(kept) == 0:
        return 0.0
    return float(np.mean(kept))


def basic_statistics(signal) -> Optional[dict]:
    """Descriptive statistics of a window. None for an empty window.

    Variance and standard deviation use the n-1 (sample) denominator.
    """
    x = _as_array(signal)
    n = len(x)
    if n == 0:
        return None

    s = np.sort(x)
    total = float(np.sum(x))
    mean = total / n
    variance = _safe_div(float(np.sum((x - mean) ** 2)), n - 1)
    std_dev = math.sqrt(variance)

    q1 = quantile(s, 0.25)
    median = quantile(s, 0.5)
    q3 = quantile(s, 0.75)

    return {
        "count": n,
        "sum": total,
        "mean": mean,
        "median": median,
        "mode": mode(x),
        "variance": variance,
        "std_dev": std_dev,
        "min": float(s[0]),
        "max": float(s[-1]),
        "range": float(s[-1] - s[0]),
        "q1": q1,
        "q3": q3,
        "iqr": q3 - q1,
        "mad": median_absolute_deviation(x, median),
        "trimmed_mean": trimmed_mean(s),
        "coefficient_of_variation": _safe_div(std_dev, abs(mean)),
    }


def moments(signal) -> Optional[dict]:
    """Population central moments, skewness and excess kurtosis.

    Both shape measures are 0 when the window has no spread.
    """
    x = _as_array(signal)
    n = len(x)
    if n == 0:
        return None

    dev = x - np.mean(x)
    m2 = float(np.mean(dev**2))
    m3 = float(np.mean(dev**3))
    m4 = float(np.mean(dev**4))

    skewness = m3 / m2**1.5 if m2 > 0 else 0.0
    kurtosis = m4 / (m2 * m2) - 3.0 if m2 > 0 else 0.0

    return {
        "variance": m2,
        "skewness": skewness,
        "kurtosis": kurtosis,
        "central_moments": {"m2": m2, "m3": m3, "m4": m4},
    }


# ================================================================
# TEMPORAL STRUCTURE
# ================================================================


def find_significant_lags(
    values, threshold: float = DEFAULT_ACF_THRESHOLD
) -> List[dict]:
    """Lags >= 1 whose |autocorrelation| exceeds ``threshold``."""
    return [
        {"lag": i, "value": float(values[i])}
        for i in range(1, len(values))
        if abs(values[i]) > threshold
    ]


def autocorrelation(
    signal,
    max_lag: Optional[int] = None,
    threshold: float = DEFAULT_ACF_THRESHOLD,
) -> dict:
    """Normalized autocorrelation function up to ``max_lag``.

    Each lag's covariance is averaged over its n - lag pairs and divided
    by the lag-0 population variance, so values[0] == 1 for any window
    with spread. A constant window yields all zeros.
    """
    x = _as_array(signal)
    n = len(x)
    if n == 0:
        return {"values": [], "lag1": 0.0, "significant_lags": []}
    if max_lag is None:
        max_lag = min(n - 1, 50)
    max_lag = max(0, min(max_lag, n - 1))

    dev = x - np.mean(x)
    variance = float(np.mean(dev**2))

    values = []
    for lag in range(max_lag + 1):
        count = n - lag
        covariance = float(np.dot(dev[:count], dev[lag:])) / count
        values.append(covariance / variance if variance > 0 else 0.0)

    return {
        "values": values,
        "lag1": values[1] if len(values) > 1 else 0.0,
        "significant_lags": find_significant_lags(values, threshold),
    }


def lagged_correlation(signal, lag: int) -> float:
    """Pearson correlation between the window and itself shifted by ``lag``."""
    x = _as_array(signal)
    n = len(x)
    if abs(lag) >= n:
        return 0.0
    if lag >= 0:
        a, b = x[: n - lag], x[lag:]
    else:
        a, b = x[-lag:], x[: n + lag]
    da = a - np.mean(a)
    db = b - np.mean(b)
    denominator = math.sqrt(float(np.sum(da**2)) * float(np.sum(db**2)))
    return _safe_div(float(np.sum(da * db)), denominator)


def crosscorrelation(signal, max_shift: int = 5) -> dict:
    return {
        f"lag{lag}": lagged_correlation(signal, lag)
        for lag in range(-max_shift, max_shift + 1)
    }


def linear_trend(signal) -> dict:
    """Ordinary least squares fit of value against sample index."""
    y = _as_array(signal)
    n = len(y)
    if n == 0:
        return {"slope": 0.0, "intercept": 0.0}
    x = np.arange(n, dtype=float)
    return _ols(x, y)


def _ols(x: np.ndarray, y: np.ndarray) -> dict:
    mean_x = float(np.mean(x))
    mean_y = float(np.mean(y))
    dx = x - mean_x
    denominator = float(np.sum(dx * dx))
    slope = float(np.sum(dx * (y - mean_y))) / denominator if denominator > 0 else 0.0
    return {"slope": slope, "intercept": mean_y - slope * mean_x}


def volatility(signal) -> float:
    """Sample standard deviation of the first differences."""
    x = _as_array(signal)
    return _sample_std(np.diff(x)) if len(x) > 1 else 0.0


def stationarity(signal) -> dict:
    """Crude stationarity check: do the two halves share a mean?"""
    x = _as_array(signal)
    half = len(x) // 2
    first, second = x[:half], x[half:]
    if len(first) == 0 or len(second) == 0:
        return {"is_stationary": True, "mean_difference": 0.0}
    mean1 = float(np.mean(first))
    mean2 = float(np.mean(second))
    difference = abs(mean1 - mean2)
    return {
        "is_stationary": difference < 0.1 * abs(mean1),
        "mean_difference": difference,
    }


def seasonality(signal) -> dict:
    acf = autocorrelation(signal)
    lags = find_significant_lags(acf["values"], SEASONALITY_THRESHOLD)
    return {"detected": len(lags) > 0, "periods": [l["lag"] for l in lags]}


def change_points(signal, magnitude: float = 0.5) -> List[dict]:
    """Indices where the mean of the following window departs from the
    preceding one by more than ``magnitude``.
    """
    x = _as_array(signal)
    n = len(x)
    window = max(10, n // 10)
    changes = []
    for i in range(window, n - window):
        before = float(np.mean(x[i - window : i]))
        after = float(np.mean(x[i : i + window]))
        if abs(after - before) > magnitude:
            changes.append({"index": i, "magnitude": abs(after - before)})
    return changes


def persistence(signal) -> float:
    """Hurst-like exponent by rescaled-range analysis.

    For each lag in {2, 4, 8, 16, min(32, n//2)} the mean R/S over all
    sliding subseries is computed; the exponent is the OLS slope of
    log(R/S) on log(lag), clamped to [0, 1]. Returns 0.5 (no memory)
    when n < 4 or fewer than two lags give a usable R/S.
    """
    x = _as_array(signal)
    n = len(x)
    if n < 4:
        return 0.5

    log_lags, log_rs = [], []
    for lag in PERSISTENCE_LAGS + (min(32, n // 2),):
        if lag >= n or lag < 2:
            continue
        windows = np.lib.stride_tricks.sliding_window_view(x, lag)
        dev = windows - windows.mean(axis=1, keepdims=True)
        cumulative = np.cumsum(dev, axis=1)
        ranges = cumulative.max(axis=1) - cumulative.min(axis=1)
        stds = windows.std(axis=1, ddof=1)
        rs = np.divide(ranges, stds, out=np.zeros_like(ranges), where=stds > 0)
        mean_rs = float(np.mean(rs))
        if mean_rs <= 0:
            continue
        log_lags.append(math.log(lag))
        log_rs.append(math.log(mean_rs))

    if len(log_lags) < 2:
        return 0.5

    slope = _ols(np.array(log_lags), np.array(log_rs))["slope"]
    return max(0.0, min(1.0, slope))


# ================================================================
# DISTRIBUTION
# ================================================================


def histogram(signal, bins: int = HISTOGRAM_BINS) -> dict:
    """Equal-width histogram over [min, max].

    A constant window has zero bin width; every value lands in bin 0.
    """
    x = _as_array(signal)
    counts = [0] * bins
    if len(x) == 0:
        return {"bins": counts, "bin_width": 0.0, "range": {"min": 0.0, "max": 0.0}}

    lo, hi = float(np.min(x)), float(np.max(x))
    width = (hi - lo) / bins
    for v in x:
        idx = int((v - lo) // width) if width > 0 else 0
        counts[min(idx, bins - 1)] += 1

    return {"bins": counts, "bin_width": width, "range": {"min": lo, "max": hi}}


def outliers(signal) -> List[float]:
    """Values outside the Tukey fences (1.5 IQR beyond the quartiles)."""
    x = _as_array(signal)
    if len(x) == 0:
        return []
    s = np.sort(x)
    q1, q3 = quantile(s, 0.25), quantile(s, 0.75)
    iqr = q3 - q1
    low, high = q1 - 1.5 * iqr, q3 + 1.5 * iqr
    return [float(v) for v in x if v < low or v > high]


def normality(signal) -> dict:
    m = moments(signal) or {"skewness": 0.0, "kurtosis": 0.0}
    return {
        "is_normal": abs(m["skewness"]) < 2 and abs(m["kurtosis"]) < 4,
        "skewness": m["skewness"],
        "kurtosis": m["kurtosis"],
    }


def symmetry(signal) -> dict:
    m = moments(signal) or {"skewness": 0.0}
    return {"skewness": m["skewness"], "is_symmetric": abs(m["skewness"]) < 0.5}


# ================================================================
# ENTROPY
# ================================================================


def shannon_entropy(signal) -> float:
    """Shannon entropy (bits) of the 20-bin histogram."""
    x = _as_array(signal)
    if len(x) == 0:
        return 0.0
    counts = np.array(histogram(x)["bins"], dtype=float)
    p = counts[counts > 0] / len(x)
    return float(-np.sum(p * np.log2(p)))


def approximate_entropy(signal, m: int = 2, r: Optional[float] = None) -> float:
    """Approximate entropy ApEn(m, r) = phi(m) - phi(m+1).

    ``r`` defaults to 0.2 times the sample standard deviation. Template
    matching compares every pair by Chebyshev distance: quadratic in
    the window length, with no internal cap.
    """
    x = _as_array(signal)
    n = len(x)
    if n - m < 1:
        return 0.0
    if r is None:
        r = 0.2 * _sample_std(x)

    def phi(length: int) -> float:
        templates = np.lib.stride_tricks.sliding_window_view(x, length)
        distance = np.max(
            np.abs(templates[:, None, :] - templates[None, :, :]), axis=2
        )
        matches = np.sum(distance <= r, axis=1)
        return float(np.mean(np.log(matches / len(templates))))

    return phi(m) - phi(m + 1)


def sample_entropy(signal, m: int = 2, r: Optional[float] = None) -> float:
    # Same computation as approximate_entropy.
    return approximate_entropy(signal, m, r)


# ================================================================
# AGGREGATES
# ================================================================


def time_series_features(signal) -> Optional[dict]:
    x = _as_array(signal)
    if len(x) < 2:
        return None
    return {
        "differences": basic_statistics(np.diff(x)),
        "trend": linear_trend(x),
        "stationarity": stationarity(x),
        "seasonality": seasonality(x),
        "change_points": change_points(x),
        "volatility": volatility(x),
        "persistence": persistence(x),
    }


def distribution_features(signal) -> dict:
    x = _as_array(signal)
    return {
        "histogram": histogram(x),
        "normality": normality(x),
        "outliers": outliers(x),
        "symmetry": symmetry(x),
    }


def entropy_features(signal) -> dict:
    x = _as_array(signal)
    return {
        "shannon": shannon_entropy(x),
        "approximate": approximate_entropy(x),
        "sample": sample_entropy(x),
    }


def compute_features(signal, max_window: Optional[int] = None) -> dict:
    """Full feature record for one signal window.

    ``max_window`` keeps only the most recent samples, which bounds the
    quadratic entropy cost for long windows.
    """
    x = _as_array(signal)
    if max_window is not None and len(x) > max_window:
        x = x[-max_window:]
    return {
        "basic": basic_statistics(x),
        "moments": moments(x),
        "time_series": time_series_features(x),
        "distribution": distribution_features(x),
        "autocorrelation": autocorrelation(x),
        "crosscorrelation": crosscorrelation(x),
        "entropy": entropy_features(x),
        "timestamp": time.time() * 1000.0,
    }
