"""
Frame driver for the hard-sphere simulation.

``Demo`` owns one ``Simulation`` and advances it frame by frame the way
an animation loop would: a fixed number of engine steps per frame,
sample collection only inside the statistics window, a periodic refresh
of the instantaneous histograms, and a single capture of the
accumulated histograms once the run has finished.  It draws nothing,
so the same loop serves interactive front ends, scripts and tests.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from distributions import mean_speed, rms_speed
from histogram import ChartData
from simulation import (
    PHASE_FINISHED,
    Simulation,
    SimulationParameters,
    SimulationStats,
)

logger = logging.getLogger("hardsphere.demo")


@dataclass(frozen=True)
class RunReport:
    """Accumulated speed statistics set against Maxwell–Boltzmann theory."""
    n_samples: int
    target_temperature: float
    mean_speed: float
    theoretical_mean_speed: float
    rms_speed: float
    theoretical_rms_speed: float

    @property
    def mean_speed_error(self) -> float:
        """Relative deviation of the sampled mean speed from theory."""
        if self.theoretical_mean_speed <= 0.0:
            return 0.0
        return (self.mean_speed - self.theoretical_mean_speed) / self.theoretical_mean_speed

    @property
    def rms_speed_error(self) -> float:
        if self.theoretical_rms_speed <= 0.0:
            return 0.0
        return (self.rms_speed - self.theoretical_rms_speed) / self.theoretical_rms_speed


class Demo:
    def __init__(
        self,
        params: SimulationParameters,
        sub_steps: int = 5,
        chart_every: int = 5,
        seed: Optional[int] = None,
    ):
        """
        Initialize a new demonstration run.

        Parameters
        ----------
        params : SimulationParameters
            Parameters of the run.
        sub_steps : int
            Engine steps per frame.
        chart_every : int
            Frames between refreshes of ``chart_data``.
        seed : int, optional
            Seed for the simulation's random generator.
        """
        if sub_steps < 1:
            raise ValueError("sub_steps must be >= 1")
        if chart_every < 1:
            raise ValueError("chart_every must be >= 1")
        self.sub_steps = int(sub_steps)
        self.chart_every = int(chart_every)
        self.seed = seed
        self.reset(params)

    def reset(self, params: Optional[SimulationParameters] = None) -> None:
        """Discard the current simulation and start a fresh one.

        Parameters are never patched into a running simulation; a change
        always means a new ``Simulation``.
        """
        if params is not None:
            self.params = params
        self.simulation = Simulation(self.params, seed=self.seed)
        self.frame_no: int = 0
        self.stats: SimulationStats = self.simulation.get_stats()
        self.chart_data: ChartData = self.simulation.get_histogram_data(False)
        self.final_chart_data: Optional[ChartData] = None

    @property
    def finished(self) -> bool:
        return self.stats.phase == PHASE_FINISHED

    def in_collection_window(self) -> bool:
        t = self.simulation.time
        return self.params.equilibrium_time <= t < self.params.collection_end

    def tick(self) -> SimulationStats:
        """Advance one frame and refresh the reported state."""
        if self.finished:
            return self.stats

        for _ in range(self.sub_steps):
            self.simulation.step()
            if self.in_collection_window():
                self.simulation.collect_samples()

        self.stats = self.simulation.get_stats()
        self.frame_no += 1
        if self.frame_no % self.chart_every == 0:
            self.chart_data = self.simulation.get_histogram_data(False)

        if self.finished:
            self.final_chart_data = self.simulation.get_histogram_data(True)
            logger.info(
                f"Run finished at t={self.stats.time:.2f} after {self.frame_no} frames "
                f"({len(self.simulation.collected_speeds)} speed samples kept)."
            )
        return self.stats

    def run(self, max_frames: Optional[int] = None) -> SimulationStats:
        """Tick until the run is finished or ``max_frames`` frames have passed."""
        frames = 0
        while not self.finished:
            if max_frames is not None and frames >= max_frames:
                logger.warning(f"Stopped after {frames} frames before the run finished.")
                break
            self.tick()
            frames += 1
        return self.stats

    def report(self) -> RunReport:
        """Compare the collected speed samples with Maxwell–Boltzmann values."""
        p = self.params
        T = self.simulation.target_temperature
        speeds = np.asarray(self.simulation.collected_speeds, dtype=float)
        if speeds.size:
            sample_mean = float(np.mean(speeds))
            sample_rms = math.sqrt(float(np.mean(speeds ** 2)))
        else:
            sample_mean = sample_rms = 0.0
        return RunReport(
            n_samples=int(speeds.size),
            target_temperature=T,
            mean_speed=sample_mean,
            theoretical_mean_speed=mean_speed(T, p.m, p.k),
            rms_speed=sample_rms,
            theoretical_rms_speed=rms_speed(T, p.m, p.k),
        )
