"""
Random sampling and Maxwell–Boltzmann reference curves.

The engine works in a normalized unit system where the Boltzmann constant
``k`` is a parameter like any other.  This module collects the pieces of
kinetic theory the engine needs: gaussian velocity components drawn with
the Box–Muller transform, the equipartition relation linking kinetic
energy to temperature, and the analytical speed and energy densities of
a 3D ideal gas used as the theoretical curves of the histograms.
"""

from __future__ import annotations

import math
from typing import Union

import numpy as np
from numpy import ndarray
from scipy import stats

################################################################################
# Sampling
################################################################################

def gaussian(rng: np.random.Generator, size=None) -> Union[float, ndarray]:
    """Draw standard normal samples with the Box–Muller transform.

    Parameters
    ----------
    rng: numpy.random.Generator
        Source of uniform variates.
    size: int or tuple of int, optional
        Output shape.  ``None`` returns a single float.

    Returns
    -------
    float or ndarray
        Samples from N(0, 1).
    """
    # 1 - U maps [0, 1) onto (0, 1], keeping log() finite
    u1 = 1.0 - rng.random(size)
    u2 = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    if size is None:
        return float(z)
    return z


def thermal_sigma(T: float, m: float, k: float) -> float:
    """Standard deviation of one velocity component at temperature ``T``."""
    if T <= 0.0 or m <= 0.0:
        return 0.0
    return math.sqrt(k * T / m)

################################################################################
# Equipartition
################################################################################

def temperature_from_energy(total_energy: float, n_particles: int, k: float) -> float:
    """Return T = 2 E / (3 N k), or 0 when the ensemble is empty."""
    if n_particles <= 0 or k <= 0.0:
        return 0.0
    return 2.0 * total_energy / (3.0 * n_particles * k)


def mean_speed(T: float, m: float, k: float) -> float:
    """Theoretical Maxwell mean speed sqrt(8 k T / (pi m))."""
    if T <= 0.0:
        return 0.0
    return float(stats.maxwell.mean(scale=thermal_sigma(T, m, k)))


def rms_speed(T: float, m: float, k: float) -> float:
    """Theoretical root-mean-square speed sqrt(3 k T / m)."""
    if T <= 0.0 or m <= 0.0:
        return 0.0
    return math.sqrt(3.0 * k * T / m)

################################################################################
# Densities
################################################################################

def maxwell_speed_pdf(v, T: float, m: float, k: float):
    """Maxwell speed density 4 pi (m / 2 pi k T)^1.5 v^2 exp(-m v^2 / 2 k T).

    This is ``scipy.stats.maxwell`` with scale ``sqrt(k T / m)``.
    """
    return stats.maxwell.pdf(v, scale=thermal_sigma(T, m, k))


def maxwell_energy_pdf(E, T: float, k: float):
    """Energy density 2 (1 / k T)^1.5 / sqrt(pi) sqrt(E) exp(-E / k T).

    For three translational degrees of freedom the kinetic energy follows a
    gamma distribution with shape 3/2 and scale ``k T``.  The density is
    zero at and below ``E = 0``.
    """
    return stats.gamma.pdf(E, a=1.5, scale=k * T)
