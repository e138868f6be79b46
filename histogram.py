"""
Fixed-bin histograms of particle speeds and energies.

Bin edges and the theoretical Maxwell–Boltzmann density at each bin
midpoint are computed once, when the engine is built, from its target
temperature.  Later queries only recount samples into the same bins, so
the axes of any chart fed from these records stay put for the whole run.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

import numpy as np

from distributions import maxwell_energy_pdf, maxwell_speed_pdf, rms_speed

N_BINS: int = 30

# 3.5 v_rms covers well over 99% of the Maxwell speed distribution.
SPEED_RANGE_FACTOR: float = 3.5

# Bins at or below this probability density are left out of the semi-log
# series, which keeps log(0) out of it.
LOG_PROBABILITY_FLOOR: float = 0.001

# Stand-in density for log() when the theoretical value is exactly zero.
THEORETICAL_LOG_FALLBACK: float = 1.0e-4


@dataclass(frozen=True)
class HistogramBin:
    """One half-open bin ``[bin_start, bin_end)`` of a histogram."""
    bin_start: float
    bin_end: float
    count: int
    probability: float
    theoretical: float


@dataclass(frozen=True)
class LogEnergyPoint:
    """Semi-log energy sample used to compare against ``-E / k T``."""
    energy: float
    log_prob: float
    theoretical_log: float


@dataclass(frozen=True)
class HistoryRecord:
    """Temperature drift record appended on every accepted sample collection."""
    time: float
    error: float
    total_energy: float


@dataclass(frozen=True)
class ChartData:
    """Snapshot handed to charting code by ``Simulation.get_histogram_data``."""
    speed: Tuple[HistogramBin, ...] = ()
    energy: Tuple[HistogramBin, ...] = ()
    energy_log: Tuple[LogEnergyPoint, ...] = ()
    temp_history: Tuple[HistoryRecord, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.speed or self.energy or self.energy_log or self.temp_history)


class BinLayout:
    """Equal-width bins over ``[0, max_value)`` with a frozen theoretical curve.

    Parameters
    ----------
    max_value: float
        Upper edge of the last bin.
    n_bins: int
        Number of bins.
    density: callable
        Theoretical probability density, evaluated once at every bin
        midpoint.
    """

    def __init__(self, max_value: float, n_bins: int, density: Callable[[np.ndarray], np.ndarray]):
        if n_bins <= 0:
            raise ValueError("n_bins must be > 0")
        self._n_bins = int(n_bins)
        self._width = float(max_value) / self._n_bins if max_value > 0.0 else 0.0
        starts = np.arange(self._n_bins, dtype=float) * self._width
        ends = starts + self._width
        midpoints = 0.5 * (starts + ends)
        theoretical = np.nan_to_num(np.asarray(density(midpoints), dtype=float))
        for arr in (starts, ends, theoretical):
            arr.flags.writeable = False
        self._starts = starts
        self._ends = ends
        self._theoretical = theoretical

    @property
    def n_bins(self) -> int:
        return self._n_bins

    @property
    def width(self) -> float:
        return self._width

    @property
    def starts(self) -> np.ndarray:
        return self._starts

    @property
    def ends(self) -> np.ndarray:
        return self._ends

    @property
    def theoretical(self) -> np.ndarray:
        return self._theoretical

    def counts(self, samples: Sequence[float]) -> np.ndarray:
        """Count ``samples`` per bin.

        Samples at or beyond the last edge land in the last bin; negative
        samples are dropped.
        """
        values = np.asarray(samples, dtype=float)
        if values.size == 0 or self._width <= 0.0:
            return np.zeros(self._n_bins, dtype=int)
        idx = np.floor(values / self._width).astype(int)
        idx = np.minimum(idx, self._n_bins - 1)
        idx = idx[idx >= 0]
        return np.bincount(idx, minlength=self._n_bins)

    def fill(self, samples: Sequence[float]) -> Tuple[HistogramBin, ...]:
        """Build fresh bins holding counts and densities for ``samples``.

        ``probability`` is ``count / (len(samples) * width)``, so the
        densities integrate to one over the bins.
        """
        counts = self.counts(samples)
        total = len(samples)
        norm = total * self._width
        return tuple(
            HistogramBin(
                bin_start=float(self._starts[i]),
                bin_end=float(self._ends[i]),
                count=int(counts[i]),
                probability=float(counts[i] / norm) if norm > 0.0 else 0.0,
                theoretical=float(self._theoretical[i]),
            )
            for i in range(self._n_bins)
        )


def speed_layout(T: float, m: float, k: float, n_bins: int = N_BINS) -> BinLayout:
    """Speed bins spanning ``[0, 3.5 v_rms]`` at temperature ``T``."""
    max_speed = SPEED_RANGE_FACTOR * rms_speed(T, m, k)
    return BinLayout(max_speed, n_bins, lambda v: maxwell_speed_pdf(v, T, m, k))


def energy_layout(T: float, m: float, k: float, n_bins: int = N_BINS) -> BinLayout:
    """Energy bins covering the same range as :func:`speed_layout`."""
    max_speed = SPEED_RANGE_FACTOR * rms_speed(T, m, k)
    max_energy = 0.5 * m * max_speed * max_speed
    return BinLayout(max_energy, n_bins, lambda E: maxwell_energy_pdf(E, T, k))


def energy_log_series(
    bins: Sequence[HistogramBin], floor: float = LOG_PROBABILITY_FLOOR
) -> Tuple[LogEnergyPoint, ...]:
    """Return ``(E, log p, log p_theory)`` for bins whose density exceeds ``floor``."""
    points = []
    for b in bins:
        if b.probability <= floor:
            continue
        theoretical = b.theoretical if b.theoretical > 0.0 else THEORETICAL_LOG_FALLBACK
        points.append(LogEnergyPoint(
            energy=0.5 * (b.bin_start + b.bin_end),
            log_prob=math.log(b.probability),
            theoretical_log=math.log(theoretical),
        ))
    return tuple(points)
