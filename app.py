import argparse
import logging
import sys

import config
from demo import Demo
from simulation import ConfigurationError

logger = logging.getLogger("hardsphere")


class App:
    """Run a configured simulation to completion and log the outcome."""

    def __init__(self, config_path=None, seed=None):
        self._config = config.ConfigLoader(config_path)
        self.params = self._config.simulation_parameters()
        if seed is None:
            seed = self._config.get("seed")
        self.demo = Demo(
            self.params,
            sub_steps=self._config["sub_steps"],
            chart_every=self._config["chart_every"],
            seed=seed,
        )

    def run(self, max_frames=None):
        """Main loop: tick the demo until the run finishes."""
        p = self.params
        logger.info(
            f"Running N={p.N}, L={p.L}, r={p.r}, dt={p.dt}, nu={p.nu} "
            f"for {p.collection_end} time units."
        )
        last_phase = None
        while not self.demo.finished:
            if max_frames is not None and self.demo.frame_no >= max_frames:
                logger.warning(f"Frame limit {max_frames} reached before the run finished.")
                break
            stats = self.demo.tick()
            if stats.phase != last_phase:
                logger.info(f"t={stats.time:.2f}: {stats.phase}")
                last_phase = stats.phase
        return self.demo.report()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Hard-sphere gas with an Andersen thermostat")
    parser.add_argument('--config', type=str, default=None,
                        help='Path to a JSON configuration file (default: config.json)')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--max-frames', type=int, default=None,
                        help='Stop after this many frames even if the run is not finished')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        app = App(args.config, seed=args.seed)
    except ConfigurationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2

    report = app.run(max_frames=args.max_frames)
    stats = app.demo.stats
    logger.info(f"Final temperature {stats.temperature:.4f} (target {report.target_temperature:.4f})")
    logger.info(f"Pressure {stats.pressure:.6f}")
    logger.info(
        f"Mean speed {report.mean_speed:.4f} vs Maxwell {report.theoretical_mean_speed:.4f} "
        f"({100.0 * report.mean_speed_error:+.2f}%) over {report.n_samples} samples"
    )
    logger.info(
        f"RMS speed {report.rms_speed:.4f} vs Maxwell {report.theoretical_rms_speed:.4f} "
        f"({100.0 * report.rms_speed_error:+.2f}%)"
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
