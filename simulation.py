"""
Simulation of hard spheres in a 3D box coupled to an Andersen heat bath.

This module defines a Simulation class that models the motion of many
identical spherical particles in a cubic box of side ``L`` with
reflective walls.  The particles move ballistically over a fixed time
step, reflect specularly off the walls, and collide elastically with one
another.  With a small probability per step each particle has its
velocity redrawn from the Maxwell–Boltzmann distribution at the target
temperature (Andersen thermostat), which keeps the gas close to the
temperature of the initial ensemble.

Besides advancing the state, the engine gathers speed and energy samples
during a statistics window that follows an equilibration period, and
reports histograms of them alongside the theoretical Maxwell–Boltzmann
curves.  The engine never draws anything; rendering, charts and the
frame loop live elsewhere and only read from it.

A run is configured once through ``SimulationParameters``.  To change a
parameter, build a new ``Simulation``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from numpy import ndarray

from distributions import (
    gaussian,
    temperature_from_energy,
    thermal_sigma,
)
from histogram import (
    ChartData,
    HistoryRecord,
    energy_layout,
    energy_log_series,
    speed_layout,
)

logger = logging.getLogger("hardsphere.simulation")

################################################################################
# Run configuration
################################################################################

# Minimum simulated time between two accepted calls to ``collect_samples``.
SAMPLE_INTERVAL: float = 0.1

# Above this packing fraction the grid placement may leave spheres
# overlapping; construction still proceeds.
PACKING_FRACTION_LIMIT: float = 0.5

# Maximum positional correction per particle and per contact, in radii.
MAX_CORRECTION: float = 0.5

# Pairs further apart than this many radii are skipped by the broad phase.
BROAD_PHASE_REACH: float = 4.0

# Temperature used to lay out histogram bins when the target is not positive.
FALLBACK_BIN_TEMPERATURE: float = 1.0

PHASE_EQUILIBRATING = 'equilibrating'
PHASE_COLLECTING = 'collecting'
PHASE_FINISHED = 'finished'


class ConfigurationError(ValueError):
    """Raised when simulation parameters are invalid.

    Attributes
    ----------
    field: str
        Name of the offending parameter.
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass(frozen=True)
class SimulationParameters:
    """Immutable parameters of a single run.

    Attributes
    ----------
    L: float
        Side length of the cubic box.
    N: int
        Number of particles.
    r: float
        Particle radius.
    m: float
        Particle mass, shared by all particles.
    k: float
        Boltzmann constant in simulation units.
    dt: float
        Integration time step.
    nu: float
        Andersen collision frequency.  Each particle is thermalized with
        probability ``nu * dt`` per step; ``0`` disables the thermostat.
    equilibrium_time: float
        Simulated time before sample collection starts.
    stats_duration: float
        Length of the sample collection window.
    max_samples: int
        Capacity of each of the speed and energy sample buffers.
    max_history: int
        Capacity of the temperature history.
    """
    L: float = 15.0
    N: int = 200
    r: float = 0.2
    m: float = 1.0
    k: float = 1.0
    dt: float = 0.01
    nu: float = 1.0
    equilibrium_time: float = 10.0
    stats_duration: float = 60.0
    max_samples: int = 2000
    max_history: int = 300

    def __post_init__(self) -> None:
        for name in ('L', 'r', 'm', 'k', 'dt', 'nu', 'equilibrium_time', 'stats_duration'):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(name, f"must be a number, got {value!r}") from None
            if not math.isfinite(value):
                raise ConfigurationError(name, f"must be finite, got {value!r}")
            object.__setattr__(self, name, value)

        for name in ('N', 'max_samples', 'max_history'):
            value = getattr(self, name)
            try:
                as_int = int(value)
            except (TypeError, ValueError, OverflowError):
                raise ConfigurationError(name, f"must be an integer, got {value!r}") from None
            if isinstance(value, bool) or as_int != value:
                raise ConfigurationError(name, f"must be an integer, got {value!r}")
            if as_int <= 0:
                raise ConfigurationError(name, f"must be > 0, got {value!r}")
            object.__setattr__(self, name, as_int)

        for name in ('L', 'r', 'm', 'k', 'dt'):
            if getattr(self, name) <= 0.0:
                raise ConfigurationError(name, f"must be > 0, got {getattr(self, name)!r}")
        for name in ('nu', 'equilibrium_time', 'stats_duration'):
            if getattr(self, name) < 0.0:
                raise ConfigurationError(name, f"must be >= 0, got {getattr(self, name)!r}")

        if 2.0 * self.r >= self.L:
            raise ConfigurationError('r', f"particle diameter {2.0 * self.r!r} does not fit in box of side {self.L!r}")

    @property
    def packing_fraction(self) -> float:
        """Total sphere volume over box volume."""
        return self.N * (4.0 / 3.0) * math.pi * self.r ** 3 / self.L ** 3

    @property
    def collection_end(self) -> float:
        return self.equilibrium_time + self.stats_duration


@dataclass(frozen=True)
class Particle:
    """Read-only snapshot of one particle."""
    x: float
    y: float
    z: float
    vx: float
    vy: float
    vz: float
    speed: float
    energy: float


@dataclass(frozen=True)
class SimulationStats:
    """Instantaneous observables returned by ``Simulation.get_stats``."""
    time: float
    temperature: float
    pressure: float
    mean_speed: float
    rms_speed: float
    is_equilibrated: bool
    phase: str
    progress: float


def phase_at(time: float, equilibrium_time: float, stats_duration: float) -> Tuple[str, float]:
    """Return the run phase at ``time`` and the progress through that phase.

    Progress is 1 for a phase whose window has zero length.
    """
    if time < equilibrium_time:
        progress = time / equilibrium_time if equilibrium_time > 0.0 else 1.0
        return PHASE_EQUILIBRATING, progress
    if time < equilibrium_time + stats_duration:
        progress = (time - equilibrium_time) / stats_duration if stats_duration > 0.0 else 1.0
        return PHASE_COLLECTING, progress
    return PHASE_FINISHED, 1.0


def _readonly(arr: ndarray) -> ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


def _snapshot(arr: ndarray) -> ndarray:
    copy = arr.copy()
    copy.flags.writeable = False
    return copy


################################################################################
# Simulation class
################################################################################

class Simulation:
    """Evolve a hard-sphere gas in a reflective cube at fixed time step.

    Particle positions and velocities are stored as ``(3, N)`` arrays.
    Every call to :meth:`step` runs three full passes in order: motion
    with wall reflection and the thermostat, pairwise collision
    resolution, and a refresh of the derived speeds and energies.
    """

    def __init__(self, params: SimulationParameters, seed: Optional[int] = None):
        """Create a simulation with particles on a jittered grid.

        Parameters
        ----------
        params: SimulationParameters
            Run parameters.  Validated on their own construction.
        seed: int, optional
            Seed for the random generator; ``None`` draws fresh entropy.
        """
        self._setup(params, seed)
        if params.packing_fraction > PACKING_FRACTION_LIMIT:
            logger.warning(
                f"Packing fraction {params.packing_fraction:.3f} exceeds {PACKING_FRACTION_LIMIT}; "
                f"initial placement may leave overlapping particles."
            )
        self._start(self._grid_positions(), gaussian(self._rng, (3, self._n_particles)))

    @classmethod
    def from_state(
        cls,
        params: SimulationParameters,
        positions: ndarray,
        velocities: ndarray,
        seed: Optional[int] = None,
    ) -> 'Simulation':
        """Create a simulation from explicit initial positions and velocities.

        Parameters
        ----------
        params: SimulationParameters
            Run parameters; ``params.N`` must match the number of columns.
        positions, velocities: ndarray
            Arrays of shape ``(3, N)``.  Positions are clamped into the box.
        seed: int, optional
            Seed for the thermostat's random generator.

        The target temperature and histogram bins are derived from
        ``velocities`` exactly as for a grid-initialized run.
        """
        sim = cls.__new__(cls)
        sim._setup(params, seed)
        r = np.array(positions, dtype=float)
        v = np.array(velocities, dtype=float)
        if r.shape != v.shape or r.shape != (3, params.N):
            raise ValueError(
                f"positions and velocities must both have shape (3, {params.N}), "
                f"got {r.shape} and {v.shape}"
            )
        sim._start(np.clip(r, params.r, params.L - params.r), v)
        return sim

    # -------------------------------------------------------------------------
    def _setup(self, params: SimulationParameters, seed: Optional[int]) -> None:
        if not isinstance(params, SimulationParameters):
            raise TypeError(f"params must be SimulationParameters, got {type(params).__name__}")
        self._params: SimulationParameters = params
        self._n_particles: int = params.N
        self._rng: np.random.Generator = np.random.default_rng(seed)

    def _start(self, positions: ndarray, velocities: ndarray) -> None:
        """Install the initial ensemble and derive everything that depends on it."""
        self._r: ndarray = positions
        self._v: ndarray = velocities
        self._init_ids_pairs()
        self._init_state()
        logger.info(
            f"Simulation created for {self._n_particles} particles in a box of side {self._params.L} "
            f"(target temperature {self._T_tar:.4g})."
        )

    def _grid_positions(self) -> ndarray:
        """Place particles at jittered cell centres of a cubic grid."""
        p = self._params
        per_side = int(round(self._n_particles ** (1.0 / 3.0)))
        while per_side ** 3 < self._n_particles:
            per_side += 1
        spacing = p.L / per_side

        cells = np.indices((per_side, per_side, per_side)).reshape(3, -1)[:, :self._n_particles]
        centres = (cells + 0.5) * spacing
        # Jitter spans 40% of the spacing, so each particle stays in its cell.
        jitter = (self._rng.random(centres.shape) - 0.5) * (spacing * 0.4)
        return np.clip(centres + jitter, p.r, p.L - p.r)

    def _init_ids_pairs(self) -> None:
        """Compute index pairs ``(i, j)``, ``i < j``, in row-major order."""
        i, j = np.triu_indices(self._n_particles, k=1)
        self._particles_ids_pairs: ndarray = np.stack([i, j], axis=1)

    def _init_state(self) -> None:
        """Reset clocks and buffers and derive the target temperature and bins."""
        p = self._params
        self._time: float = 0.0
        self._last_sample_time: float = -math.inf
        self._collected_speeds: List[float] = []
        self._collected_energies: List[float] = []
        self._temp_history: List[HistoryRecord] = []

        self._update_derived()
        self._T_tar: float = temperature_from_energy(
            float(np.sum(self._energy)), self._n_particles, p.k
        )

        # Bins are fixed for the lifetime of the run.
        T_bins = self._T_tar if self._T_tar > 0.0 else FALLBACK_BIN_TEMPERATURE
        self._speed_layout = speed_layout(T_bins, p.m, p.k)
        self._energy_layout = energy_layout(T_bins, p.m, p.k)

    # -------------------------------------------------------------------------
    # Properties to expose the state
    @property
    def params(self) -> SimulationParameters:
        return self._params

    @property
    def time(self) -> float:
        """Elapsed simulated time."""
        return self._time

    @property
    def target_temperature(self) -> float:
        """Thermostat set point, fixed at construction."""
        return self._T_tar

    @property
    def r(self) -> ndarray:
        """Return a read-only copy of the positions as a 3×N array.

        The copy does not follow later steps.
        """
        return _snapshot(self._r)

    @property
    def v(self) -> ndarray:
        """Return a read-only copy of the velocities as a 3×N array."""
        return _snapshot(self._v)

    @property
    def speeds(self) -> ndarray:
        return _readonly(self._speed)

    @property
    def energies(self) -> ndarray:
        return _readonly(self._energy)

    @property
    def particles(self) -> Tuple[Particle, ...]:
        """Snapshot of every particle, for renderers."""
        r, v = self._r, self._v
        return tuple(
            Particle(
                x=float(r[0, i]), y=float(r[1, i]), z=float(r[2, i]),
                vx=float(v[0, i]), vy=float(v[1, i]), vz=float(v[2, i]),
                speed=float(self._speed[i]),
                energy=float(self._energy[i]),
            )
            for i in range(self._n_particles)
        )

    @property
    def collected_speeds(self) -> Tuple[float, ...]:
        return tuple(self._collected_speeds)

    @property
    def collected_energies(self) -> Tuple[float, ...]:
        return tuple(self._collected_energies)

    @property
    def temp_history(self) -> Tuple[HistoryRecord, ...]:
        return tuple(self._temp_history)

    # -------------------------------------------------------------------------
    # Thermodynamic properties
    def calc_full_kinetic_energy(self) -> float:
        """Total kinetic energy of the gas."""
        return float(np.sum(self._energy))

    @property
    def T(self) -> float:
        """Instantaneous temperature from equipartition."""
        return temperature_from_energy(self.calc_full_kinetic_energy(), self._n_particles, self._params.k)

    # -------------------------------------------------------------------------
    @staticmethod
    def get_deltad2_pairs(r: ndarray, ids_pairs: ndarray) -> ndarray:
        """Compute squared distances between all pairs of points given by indices."""
        dr = r[:, ids_pairs[:, 0]] - r[:, ids_pairs[:, 1]]
        return np.sum(dr * dr, axis=0)

    @staticmethod
    def compute_new_v(
        v1: ndarray, v2: ndarray, normal: ndarray
    ) -> Optional[Tuple[ndarray, ndarray]]:
        """Compute post-collision velocities of two equal-mass spheres.

        Parameters
        ----------
        v1, v2: ndarray
            Velocities of the two particles.
        normal: ndarray
            Unit contact normal pointing from particle 2 to particle 1.

        Returns
        -------
        tuple of ndarray or None
            New velocities, or ``None`` if the particles are already
            separating along the normal.  The normal components of the
            two velocities are exchanged; tangential components are kept.
        """
        vel_along_normal = float(np.dot(v1 - v2, normal))
        if vel_along_normal > 0.0:
            return None
        impulse = vel_along_normal * normal
        return v1 - impulse, v2 + impulse

    # -------------------------------------------------------------------------
    def step(self) -> None:
        """Advance the system by exactly one time step ``dt``."""
        dt = self._params.dt
        self._move(dt)
        self._resolve_collisions()
        self._update_derived()
        self._time += dt

    def _move(self, dt: float) -> None:
        """Ballistic motion, per-axis wall reflection and the Andersen thermostat."""
        p = self._params
        self._r += self._v * dt

        # Each axis reflects on its own, so a corner hit is two (or three)
        # independent single-axis reflections.
        lo = p.r
        hi = p.L - p.r
        below = self._r < lo
        above = self._r > hi
        self._r[below] = lo
        self._r[above] = hi
        self._v[below | above] *= -1.0

        p_coll = p.nu * dt
        if p_coll > 0.0:
            hits = self._rng.random(self._n_particles) < p_coll
            n_hits = int(np.count_nonzero(hits))
            if n_hits:
                sigma = thermal_sigma(self._T_tar, p.m, p.k)
                self._v[:, hits] = gaussian(self._rng, (3, n_hits)) * sigma

    def _resolve_collisions(self) -> None:
        """Resolve overlapping, approaching pairs in ``(i, j)`` order.

        A vectorized pass shortlists pairs within ``BROAD_PHASE_REACH``
        radii; each shortlisted pair is then tested against the current
        positions, which already include corrections made to earlier pairs.
        """
        if not self._particles_ids_pairs.size:
            return
        R = self._params.r
        min_dist = 2.0 * R
        min_dist_sq = min_dist * min_dist
        max_corr = MAX_CORRECTION * R

        reach = BROAD_PHASE_REACH * R
        d2 = self.get_deltad2_pairs(self._r, self._particles_ids_pairs)
        candidates = self._particles_ids_pairs[d2 < reach * reach]

        r, v = self._r, self._v
        for i, j in candidates:
            dr = r[:, i] - r[:, j]
            # No overlap is possible once any single axis is apart by 2R.
            if np.any(np.abs(dr) > min_dist):
                continue
            dist_sq = float(np.dot(dr, dr))
            if dist_sq >= min_dist_sq:
                continue
            dist = math.sqrt(dist_sq)
            if dist == 0.0:
                # Coincident centres have no contact normal.
                continue
            normal = dr / dist

            new_v = self.compute_new_v(v[:, i], v[:, j], normal)
            if new_v is None:
                continue
            v[:, i], v[:, j] = new_v

            corr = min(0.5 * (min_dist - dist), max_corr)
            r[:, i] += corr * normal
            r[:, j] -= corr * normal

    def _update_derived(self) -> None:
        """Clamp positions into the box and refresh speeds and energies."""
        p = self._params
        np.clip(self._r, p.r, p.L - p.r, out=self._r)
        self._speed: ndarray = np.linalg.norm(self._v, axis=0)
        self._energy: ndarray = 0.5 * p.m * self._speed ** 2

    # -------------------------------------------------------------------------
    def __iter__(self) -> 'Simulation':
        return self

    def __next__(self) -> Tuple[ndarray, ndarray]:
        """Advance the simulation and return read-only positions and velocities."""
        self.step()
        return self.r, self.v

    # -------------------------------------------------------------------------
    def collect_samples(self) -> None:
        """Append the current speeds and energies to the sample buffers.

        Calls less than ``SAMPLE_INTERVAL`` after the last accepted one are
        ignored.  Buffers are capped: once over capacity, the oldest
        entries are dropped one per-step snapshot (``N`` samples) at a time.
        """
        if self._time - self._last_sample_time < SAMPLE_INTERVAL:
            return
        self._last_sample_time = self._time

        p = self._params
        self._collected_speeds.extend(self._speed.tolist())
        self._collected_energies.extend(self._energy.tolist())
        overflow = len(self._collected_speeds) - p.max_samples
        if overflow > 0:
            drop = -(-overflow // self._n_particles) * self._n_particles
            if drop >= len(self._collected_speeds):
                # A single snapshot is larger than the buffer.
                drop = overflow
            del self._collected_speeds[:drop]
            del self._collected_energies[:drop]
            logger.debug(f"Evicted {drop} oldest samples at t={self._time:.3f}.")

        total_energy = self.calc_full_kinetic_energy()
        current_T = temperature_from_energy(total_energy, self._n_particles, p.k)
        error = 100.0 * (current_T - self._T_tar) / self._T_tar if self._T_tar > 0.0 else 0.0
        self._temp_history.append(HistoryRecord(time=self._time, error=error, total_energy=total_energy))
        if len(self._temp_history) > p.max_history:
            self._temp_history.pop(0)

    # -------------------------------------------------------------------------
    def get_stats(self) -> SimulationStats:
        """Return instantaneous observables and the current run phase."""
        p = self._params
        n = self._n_particles
        temperature = self.T
        pressure = n * p.k * temperature / p.L ** 3
        if n > 0:
            mean_speed = float(np.mean(self._speed))
            rms = float(np.sqrt(np.mean(self._speed ** 2)))
        else:
            mean_speed = rms = 0.0
        phase, progress = phase_at(self._time, p.equilibrium_time, p.stats_duration)
        return SimulationStats(
            time=self._time,
            temperature=temperature,
            pressure=pressure,
            mean_speed=mean_speed,
            rms_speed=rms,
            is_equilibrated=self._time >= p.equilibrium_time,
            phase=phase,
            progress=progress,
        )

    def get_histogram_data(self, use_accumulated: bool = False) -> ChartData:
        """Recount speed and energy histograms on the fixed bins.

        Parameters
        ----------
        use_accumulated: bool
            ``True`` bins the collected sample buffers; ``False`` bins the
            current particle state.

        Returns
        -------
        ChartData
            Empty when there is nothing to bin.
        """
        if use_accumulated:
            speeds, energies = self._collected_speeds, self._collected_energies
        else:
            speeds, energies = self._speed, self._energy
        if len(speeds) == 0:
            return ChartData()

        speed_bins = self._speed_layout.fill(speeds)
        energy_bins = self._energy_layout.fill(energies)
        return ChartData(
            speed=speed_bins,
            energy=energy_bins,
            energy_log=energy_log_series(energy_bins),
            temp_history=tuple(self._temp_history),
        )
