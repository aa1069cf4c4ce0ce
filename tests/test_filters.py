import numpy as np
import pytest

from processing.filters import BandpassFilter, LEGACY_A, LEGACY_B, design_bandpass
from utils.synthetic import pulse_train


def test_zero_input_gives_zero_output():
    bp = BandpassFilter()
    out = bp.apply(np.zeros(1500))
    assert out.shape == (1500,)
    assert not out.any()


def test_first_order_outputs_are_zero():
    bp = BandpassFilter()
    x = np.arange(100, dtype=float) + 50.0
    out = bp.apply(x)
    assert bp.order == 8
    assert not out[:8].any()
    assert out[8:].any()


def test_short_buffer_returns_all_zero():
    out = BandpassFilter().apply([1.0, 2.0, 3.0])
    assert out.tolist() == [0.0, 0.0, 0.0]


def test_recomputation_is_idempotent():
    bp = BandpassFilter()
    x = pulse_train(1500)
    np.testing.assert_array_equal(bp.apply(x), bp.apply(x))


def test_matches_direct_form_recurrence():
    bp = BandpassFilter()
    rng = np.random.default_rng(0)
    x = rng.normal(size=64)
    b, a, n = bp.b, bp.a, bp.order

    expected = np.zeros_like(x)
    for i in range(n, x.size):
        acc = sum(b[k] * x[i - k] for k in range(n + 1))
        acc -= sum(a[k] * expected[i - k] for k in range(1, n + 1))
        expected[i] = acc

    np.testing.assert_allclose(bp.apply(x), expected, rtol=1e-9, atol=1e-12)


def test_default_coefficients_are_stable_and_legacy_are_not():
    assert BandpassFilter().is_stable()
    legacy = BandpassFilter.legacy()
    assert not legacy.is_stable()
    assert legacy.max_pole_radius() > 1.0
    np.testing.assert_allclose(legacy.b, LEGACY_B)
    np.testing.assert_allclose(legacy.a, LEGACY_A)


def test_mismatched_coefficients_rejected():
    with pytest.raises(ValueError):
        BandpassFilter(b=[1.0, 0.0, 0.0], a=[1.0, 0.5])
    with pytest.raises(ValueError):
        BandpassFilter(b=[1.0, 0.0], a=[0.0, 1.0])


def test_invalid_band_rejected():
    with pytest.raises(ValueError):
        design_bandpass(fs=500, band=(40.0, 0.5))
    with pytest.raises(ValueError):
        design_bandpass(fs=500, band=(0.5, 300.0))


def test_from_config_selects_coefficient_set():
    assert BandpassFilter.from_config({"filter": {"coefficients": "legacy"}}, 500).order == 8
    assert BandpassFilter.from_config({}, 500).is_stable()
    with pytest.raises(ValueError):
        BandpassFilter.from_config({"filter": {"coefficients": "chebyshev"}}, 500)
