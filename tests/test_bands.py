import math

import numpy as np
import pytest

from bands import compute_bands, compute_centerline, population_std


def _running_mean(values):
    total = 0.0
    for value in values:
        total = total + value
    return total / len(values)


def _reference_std(values):
    if not values:
        return 0.0
    mean = _running_mean(values)
    return math.sqrt(_running_mean([(v - mean) ** 2 for v in values]))


def _reference_bands(sequence, factor):
    centerline = []
    total = 0.0
    for count, value in enumerate(sequence, start=1):
        total = total + value
        centerline.append(total / count)
    lower, upper = [], []
    for index, entry in enumerate(centerline):
        deviation = _reference_std(centerline[:index] + centerline[index + 1:])
        lower.append(entry - deviation * factor)
        upper.append(entry + deviation * factor)
    return tuple(centerline), tuple(lower), tuple(upper)


def test_centerline_is_expanding_mean_for_random_sequences():
    rng = np.random.default_rng(7)
    for length in range(1, 101):
        sequence = rng.normal(scale=5.0, size=length).tolist()
        centerline = compute_centerline(sequence)

        assert len(centerline) == length
        assert centerline == _reference_bands(sequence, 1.0)[0]


def test_bounds_use_leave_one_out_std_of_centerline():
    sequence = [0.4, -1.2, 3.3, 0.0, 2.1, -0.7]
    factor = 1.7

    bands = compute_bands(sequence, factor)

    centerline = list(bands.centerline)
    for index, center in enumerate(centerline):
        helper = centerline[:index] + centerline[index + 1:]
        deviation = _reference_std(helper)
        assert bands.lower[index] == center - deviation * factor
        assert bands.upper[index] == center + deviation * factor


def test_bands_are_bit_identical_to_running_sum_arithmetic():
    rng = np.random.default_rng(2024)
    for _ in range(200):
        sequence = rng.normal(scale=3.0, size=60).tolist()

        bands = compute_bands(sequence, 9.0)

        centerline, lower, upper = _reference_bands(sequence, 9.0)
        assert bands.centerline == centerline
        assert bands.lower == lower
        assert bands.upper == upper

def test_constant_sequence_has_collapsed_bounds():
    bands = compute_bands([1.0] * 5, 2.0)

    assert bands.centerline == (1.0, 1.0, 1.0, 1.0, 1.0)
    assert bands.lower == (1.0, 1.0, 1.0, 1.0, 1.0)
    assert bands.upper == (1.0, 1.0, 1.0, 1.0, 1.0)


def test_lower_centerline_upper_ordering():
    rng = np.random.default_rng(11)
    for length in range(2, 40):
        sequence = rng.normal(size=length).tolist()
        for factor in (0.0, 0.5, 2.0, 9.0):
            bands = compute_bands(sequence, factor)
            for lower, center, upper in zip(bands.lower, bands.centerline, bands.upper):
                assert lower <= center <= upper


def test_outlier_window_matches_hand_computation():
    bands = compute_bands([0.0, 0.0, 0.0, -10.0], 1.0)

    assert bands.centerline == (0.0, 0.0, 0.0, -2.5)
    # Leaving out the last centerline value leaves three zeros.
    assert bands.latest.lower == -2.5
    assert bands.latest.upper == -2.5
    expected_first = _reference_std([0.0, 0.0, -2.5])
    assert bands.lower[0] == pytest.approx(-expected_first)
    assert bands.upper[0] == pytest.approx(expected_first)


def test_single_sample_has_zero_width():
    bands = compute_bands([3.25], 4.0)

    assert bands.at(0) == (3.25, 3.25, 3.25)


def test_empty_sequence_gives_empty_band():
    bands = compute_bands([], 2.0)

    assert len(bands) == 0
    with pytest.raises(IndexError):
        bands.latest


def test_population_std_is_not_bessel_corrected():
    assert population_std([1.0, 3.0]) == 1.0
    assert population_std([]) == 0.0


def test_compute_bands_is_pure():
    sequence = (0.3, 1.9, -2.4, 0.8, 5.0, -1.1)

    first = compute_bands(sequence, 2.0)
    second = compute_bands(sequence, 2.0)

    assert first == second
    assert sequence == (0.3, 1.9, -2.4, 0.8, 5.0, -1.1)


def test_non_finite_samples_propagate():
    bands = compute_bands([1.0, float("nan"), 2.0], 2.0)

    assert math.isnan(bands.centerline[1])
    assert all(math.isnan(value) for value in bands.lower)

    inf_bands = compute_bands([1.0, 2.0, float("inf")], 2.0)
    assert not math.isfinite(inf_bands.latest.upper)

