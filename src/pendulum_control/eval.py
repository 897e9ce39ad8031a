#!/usr/bin/env python3
"""
Evaluation Script for Pendulum Controllers

This script runs headless pendulum scenarios and reports how each controller
behaves:
- Build a simulation from defaults, a YAML/JSON config, and CLI overrides
- Advance a fixed number of ticks
- Compute settling, error, and saturation metrics per entity
- Save JSON metrics, text reports, history dumps, and plots

Usage:
    python -m pendulum_control.eval
    python -m pendulum_control.eval --controller lqr --ticks 1000
    python -m pendulum_control.eval --config configs/scenario.yaml --no-plots
"""

import argparse
import logging
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for server/headless

import matplotlib.pyplot as plt

from pendulum_control.controllers import LQRController
from pendulum_control.env import EnvConfig
from pendulum_control.simulation import PendulumEntity, Simulation
from pendulum_control.utils import (
    Plotter,
    load_config,
    save_json,
)
from pendulum_control.utils.metrics import (
    EpisodeMetrics,
    SuccessCriteria,
    compute_episode_metrics,
    format_metrics_report,
)

logger = logging.getLogger(__name__)


class Evaluator:
    """
    Controller evaluation pipeline.

    Runs a simulation, computes metrics per entity and writes reports.
    """

    def __init__(
        self,
        simulation: Simulation,
        criteria: SuccessCriteria | None = None,
        output_dir: str | Path = "reports",
    ):
        """
        Initialize evaluator.

        Args:
            simulation: Simulation with the entities to evaluate.
            criteria: Success criteria configuration.
            output_dir: Directory for output reports and plots.
        """
        self.simulation = simulation
        self.criteria = criteria or SuccessCriteria()
        self.output_dir = Path(output_dir)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        (self.output_dir / "plots").mkdir(exist_ok=True)

        self.results: dict[str, EpisodeMetrics] = {}

    def run(self, ticks: int) -> dict[str, EpisodeMetrics]:
        """
        Advance the simulation and compute metrics for every entity.

        Args:
            ticks: Number of ticks to advance.

        Returns:
            Mapping of entity name to EpisodeMetrics.
        """
        logger.info(
            "Running %d ticks (%.1fs) for %d entities",
            ticks,
            ticks * self.simulation.dt,
            len(self.simulation.entities),
        )
        self.simulation.run(ticks)

        self.results = {
            entity.name: self.evaluate_entity(entity)
            for entity in self.simulation.entities
        }
        for name, metrics in self.results.items():
            logger.info(
                "%s: settled=%s, final error=%.4f, saturation=%.1f%%",
                name,
                metrics.settling_tick,
                metrics.final_abs_error,
                metrics.saturation_ratio * 100,
            )
        return self.results

    def evaluate_entity(self, entity: PendulumEntity) -> EpisodeMetrics:
        """Compute metrics from one entity's history."""
        set_point = entity.set_point
        if set_point is None:
            # Uncontrolled pendulums are judged against upright
            set_point = self.simulation.config.lqr.set_point

        solver_failures = 0
        if isinstance(entity.controller, LQRController):
            solver_failures = entity.controller.failure_count

        return compute_episode_metrics(
            angles=entity.history.get("angle"),
            controls=entity.history.control,
            set_point=set_point,
            dt=self.simulation.dt,
            criteria=self.criteria,
            solver_failures=solver_failures,
            first_tick=entity.history.first_tick,
            total_ticks=entity.history.total_ticks,
        )

    def save_report(self) -> dict[str, Path]:
        """
        Save metrics, text reports and history dumps.

        Returns:
            Dictionary of saved file paths.
        """
        saved_files = {}

        metrics_path = save_json(
            {name: m.to_dict() for name, m in self.results.items()},
            self.output_dir / "metrics.json",
        )
        saved_files["metrics"] = metrics_path
        logger.info("Saved metrics: %s", metrics_path)

        report_path = self.output_dir / "report.txt"
        with open(report_path, "w") as f:
            f.write(
                "\n\n".join(
                    format_metrics_report(name, metrics)
                    for name, metrics in self.results.items()
                )
            )
        saved_files["report"] = report_path
        logger.info("Saved report: %s", report_path)

        for entity in self.simulation.entities:
            history_path = save_json(
                entity.history.to_dict(),
                self.output_dir / f"{entity.name}_history.json",
            )
            saved_files[f"{entity.name}_history"] = history_path

        return saved_files

    def generate_all_plots(self) -> list[Path]:
        """
        Plot the history of every entity.

        Returns:
            Paths of the saved figures.
        """
        plotter = Plotter()
        paths = []
        for entity in self.simulation.entities:
            save_path = self.output_dir / "plots" / f"{entity.name}_history.png"
            fig, _ = plotter.plot_history(
                entity.history,
                set_point=entity.set_point,
                title=f"{entity.name} ({entity.controller_type})",
                save_path=save_path,
            )
            plt.close(fig)
            paths.append(save_path)
            logger.info("Saved plot: %s", save_path)
        return paths


def build_simulation(controller: str, config: dict) -> Simulation:
    """
    Build the simulation for a CLI run.

    Args:
        controller: 'pid', 'lqr', 'none' or 'both'.
        config: Configuration dictionary.

    Returns:
        Simulation with the requested entities.
    """
    env_config = EnvConfig.from_dict(config)
    if controller == "both":
        return Simulation.build_default_scene(env_config)
    simulation = Simulation(env_config)
    simulation.add_entity(controller, controller_type=controller)
    return simulation


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Evaluate pendulum controllers")

    parser.add_argument(
        "--controller",
        type=str,
        default="both",
        choices=["pid", "lqr", "none", "both"],
        help="Controller to evaluate ('both' runs PID and LQR side by side)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML or JSON configuration file",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=600,
        help="Number of ticks to simulate",
    )
    parser.add_argument(
        "--settle-tolerance",
        type=float,
        default=0.05,
        help="Settling band around the set point in radians",
    )
    parser.add_argument(
        "--max-settling-ticks",
        type=int,
        default=500,
        help="Latest tick by which the pendulum must settle",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        help="Output directory for reports and plots (default from config)",
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip generating plots",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level (default from config)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, PermissionError, ValueError) as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Failed to load configuration: %s", e)
        return 1

    logging.basicConfig(
        level=(args.log_level or config["logging"]["level"]).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        simulation = build_simulation(args.controller, config)
    except ValueError as e:
        logger.error("Failed to build simulation: %s", e)
        return 1

    criteria = SuccessCriteria(
        settle_tolerance=args.settle_tolerance,
        max_settling_ticks=args.max_settling_ticks,
    )
    evaluator = Evaluator(
        simulation=simulation,
        criteria=criteria,
        output_dir=args.output_dir or config["logging"]["output_dir"],
    )

    results = evaluator.run(args.ticks)
    evaluator.save_report()

    if not args.no_plots:
        evaluator.generate_all_plots()

    controlled = {
        name: metrics
        for name, metrics in results.items()
        if simulation.get_entity(name).controller is not None
    }
    if all(metrics.success for metrics in controlled.values()):
        logger.info("SUCCESS: all controlled pendulums settled")
        return 0
    logger.warning(
        "FAILED: not settled: %s",
        ", ".join(name for name, m in controlled.items() if not m.success),
    )
    return 1


if __name__ == "__main__":
    sys.exit(main())
