"""Tests for sampling and Maxwell–Boltzmann reference functions.

Validates:
- Box–Muller samples are standard normal and always finite
- Speed and energy densities match their closed forms and are normalized
- Theoretical mean and RMS speeds
- Equipartition temperature and its empty-ensemble guard
"""

import math

import numpy as np
import pytest
from scipy import integrate

from distributions import (
    gaussian,
    maxwell_energy_pdf,
    maxwell_speed_pdf,
    mean_speed,
    rms_speed,
    temperature_from_energy,
    thermal_sigma,
)


class _ZeroRng:
    """Generator stand-in whose uniform draws are all exactly zero."""

    def random(self, size=None):
        return 0.0 if size is None else np.zeros(size)


class TestGaussian:
    """Tests for the Box–Muller sampler."""

    def test_moments(self):
        rng = np.random.default_rng(12)
        z = gaussian(rng, 200_000)
        assert abs(np.mean(z)) < 0.01
        assert np.std(z) == pytest.approx(1.0, abs=0.01)

    def test_shape(self):
        rng = np.random.default_rng(0)
        assert gaussian(rng, (3, 7)).shape == (3, 7)

    def test_scalar(self):
        rng = np.random.default_rng(0)
        assert isinstance(gaussian(rng), float)

    def test_zero_uniform_is_finite(self):
        """A uniform draw of exactly 0 must not reach log(0)."""
        z = gaussian(_ZeroRng(), 5)
        assert np.all(np.isfinite(z))

    def test_reproducible_with_seed(self):
        a = gaussian(np.random.default_rng(99), 10)
        b = gaussian(np.random.default_rng(99), 10)
        np.testing.assert_array_equal(a, b)


class TestDensities:
    """Tests for the analytical Maxwell–Boltzmann densities."""

    T, m, k = 2.0, 1.5, 0.7

    def test_speed_pdf_closed_form(self):
        T, m, k = self.T, self.m, self.k
        for v in (0.1, 0.8, 1.7, 3.2):
            expected = (4.0 * math.pi * (m / (2.0 * math.pi * k * T)) ** 1.5
                        * v * v * math.exp(-m * v * v / (2.0 * k * T)))
            assert maxwell_speed_pdf(v, T, m, k) == pytest.approx(expected, rel=1e-10)

    def test_energy_pdf_closed_form(self):
        T, k = self.T, self.k
        for E in (0.05, 0.6, 2.0, 5.5):
            expected = (2.0 * (1.0 / (k * T)) ** 1.5 / math.sqrt(math.pi)
                        * math.sqrt(E) * math.exp(-E / (k * T)))
            assert maxwell_energy_pdf(E, T, k) == pytest.approx(expected, rel=1e-10)

    def test_energy_pdf_zero_at_origin(self):
        assert maxwell_energy_pdf(0.0, self.T, self.k) == 0.0

    def test_speed_pdf_normalized(self):
        total, _ = integrate.quad(lambda v: maxwell_speed_pdf(v, self.T, self.m, self.k), 0.0, np.inf)
        assert total == pytest.approx(1.0, abs=1e-8)

    def test_energy_pdf_normalized(self):
        total, _ = integrate.quad(lambda E: maxwell_energy_pdf(E, self.T, self.k), 0.0, np.inf)
        assert total == pytest.approx(1.0, abs=1e-8)

    def test_speed_pdf_vectorized(self):
        v = np.linspace(0.0, 4.0, 9)
        assert maxwell_speed_pdf(v, self.T, self.m, self.k).shape == v.shape


class TestKineticTheory:
    """Tests for mean/RMS speeds and equipartition."""

    def test_mean_speed(self):
        T, m, k = 1.3, 2.0, 1.0
        assert mean_speed(T, m, k) == pytest.approx(math.sqrt(8.0 * k * T / (math.pi * m)))

    def test_rms_speed(self):
        T, m, k = 1.3, 2.0, 1.0
        assert rms_speed(T, m, k) == pytest.approx(math.sqrt(3.0 * k * T / m))

    def test_zero_temperature(self):
        assert mean_speed(0.0, 1.0, 1.0) == 0.0
        assert rms_speed(0.0, 1.0, 1.0) == 0.0
        assert thermal_sigma(0.0, 1.0, 1.0) == 0.0

    def test_temperature_from_energy(self):
        assert temperature_from_energy(30.0, 10, 2.0) == pytest.approx(2.0 * 30.0 / (3.0 * 10 * 2.0))

    def test_temperature_empty_ensemble(self):
        assert temperature_from_energy(5.0, 0, 1.0) == 0.0
