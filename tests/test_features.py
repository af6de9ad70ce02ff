import numpy as np
import pytest

from motion_classifier.constants import NUM_MOTION_FEATURES
from motion_classifier.errors import InsufficientDataError
from motion_classifier.features import (
    FEATURE_NAMES,
    extract_motion_features,
    get_extractor,
    pearson,
    population_variance,
)


def feature(vector, name):
    return vector[FEATURE_NAMES.index(name)]


@pytest.mark.parametrize("sample", [(0.1, 0.1, 0.1), (10.0, 0.0, 0.0), (-3.3, 7.7, 0.7)])
def test_constant_window_has_no_motion(sample):
    vector = extract_motion_features(np.tile(sample, (10, 1)))

    assert vector.shape == (26,)
    for axis in "xyz":
        assert feature(vector, f"var_{axis}") == 0.0
        assert feature(vector, f"range_{axis}") == 0.0
        assert feature(vector, f"velocity_{axis}") == 0.0
        assert feature(vector, f"jerk_{axis}") == 0.0
        assert feature(vector, f"dominance_{axis}") == pytest.approx(1 / 3)
    for pair in ("xy", "yz", "xz"):
        assert feature(vector, f"corr_{pair}") == 0.0
    assert feature(vector, "magnitude_var") == 0.0


def test_dominance_ratios_sum_to_one():
    rng = np.random.default_rng(3)
    for _ in range(20):
        window = rng.normal(scale=rng.uniform(0.1, 5.0), size=(10, 3))
        vector = extract_motion_features(window)
        ratios = [feature(vector, f"dominance_{a}") for a in "xyz"]
        assert sum(ratios) == pytest.approx(1.0, abs=1e-9)
        assert all(r >= 0 for r in ratios)


def test_single_moving_axis_dominates():
    window = np.zeros((10, 3))
    window[:, 2] = np.arange(10)
    vector = extract_motion_features(window)

    assert feature(vector, "dominance_z") == pytest.approx(1.0)
    assert feature(vector, "dominance_x") == 0.0


def test_statistics_use_population_variance():
    rng = np.random.default_rng(11)
    window = rng.normal(size=(10, 3))
    vector = extract_motion_features(window)

    np.testing.assert_allclose(vector[:3], window[-1])
    for idx, axis in enumerate("xyz"):
        assert feature(vector, f"mean_{axis}") == pytest.approx(window[:, idx].mean())
        assert feature(vector, f"var_{axis}") == pytest.approx(np.var(window[:, idx], ddof=0))
        assert feature(vector, f"range_{axis}") == pytest.approx(np.ptp(window[:, idx]))


def test_velocity_and_jerk_start_at_zero():
    window = np.zeros((10, 3))
    window[:, 0] = np.arange(10.0)
    vector = extract_motion_features(window)

    # velocity is [0, 1, 1, ...], jerk is [0, 1, 0, ...]
    assert feature(vector, "velocity_x") == pytest.approx(0.9)
    assert feature(vector, "jerk_x") == pytest.approx(0.1)
    assert feature(vector, "velocity_y") == 0.0


def test_correlations_follow_axis_pairs():
    x = np.arange(10.0)
    window = np.column_stack([x, 2 * x + 1, -x])
    vector = extract_motion_features(window)

    assert feature(vector, "corr_xy") == pytest.approx(1.0)
    assert feature(vector, "corr_yz") == pytest.approx(-1.0)
    assert feature(vector, "corr_xz") == pytest.approx(-1.0)


def test_magnitude_features():
    vector = extract_motion_features(np.tile((3.0, 4.0, 0.0), (10, 1)))
    assert feature(vector, "magnitude_mean") == pytest.approx(5.0)
    assert feature(vector, "magnitude_var") == 0.0


def test_helpers_treat_flat_series_as_zero_variance():
    flat = np.full((10, 1), 0.1)
    assert population_variance(flat)[0] == 0.0
    assert pearson(flat[:, 0], np.arange(10.0)) == 0.0


def test_extractor_rejects_wrong_window_length():
    extractor = get_extractor("motion")
    with pytest.raises(InsufficientDataError):
        extractor.extract(np.zeros((9, 3)))


def test_single_sample_window_degenerates_derivatives():
    extractor = get_extractor("motion", window_size=1)
    vector = extractor.extract([[1.0, 2.0, 3.0]])
    for axis in "xyz":
        assert feature(vector, f"velocity_{axis}") == 0.0
        assert feature(vector, f"jerk_{axis}") == 0.0


def test_raw_extractor_passes_last_sample_through():
    extractor = get_extractor("raw")
    assert extractor.window_size == 1
    assert extractor.num_features == 3
    assert extractor.feature_columns == ("x", "y", "z")
    np.testing.assert_array_equal(extractor.extract([[1.0, -2.0, 3.5]]), [1.0, -2.0, 3.5])


def test_unknown_extractor_name():
    with pytest.raises(ValueError):
        get_extractor("fft")


def test_extraction_is_deterministic_and_leaves_input_alone():
    window = np.random.default_rng(5).normal(size=(10, 3))
    original = window.copy()
    first = extract_motion_features(window)
    second = extract_motion_features(window)
    np.testing.assert_array_equal(first, second)
    np.testing.assert_array_equal(window, original)


def test_feature_names_match_extractor_width():
    assert len(FEATURE_NAMES) == NUM_MOTION_FEATURES
    assert len(set(FEATURE_NAMES)) == NUM_MOTION_FEATURES
    assert get_extractor("motion").num_features == len(FEATURE_NAMES)
