from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import warnings
from pathlib import Path
from typing import Sequence

import numpy as np

from helmholtz_bem.analysis.input_data import read_input_json
from helmholtz_bem.analysis.pipeline import Analysis, SweepPolicy
from helmholtz_bem.errors import ConfigurationError, SingularSystemError

LOG = logging.getLogger(__name__)
DEFAULT_WORKERS = os.cpu_count() or 1

EXIT_OK = 0
EXIT_CONFIGURATION = 2
EXIT_SINGULAR = 3

EXPERT_ONLY_TOKENS = {
    "--quad-order",
    "--tau-near",
    "--tol-near",
    "--max-subdiv",
    "--jump-term",
    "--coincidence-tol",
    "--pivot-tol",
    "--body-array",
}


def _has_expert_flag(argv: Sequence[str]) -> bool:
    return ("--expert" in argv)


def build_argparser(*, expert: bool) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="helmholtz-bem",
        description=(
            "Acoustic scattering/radiation by the boundary element method (JSON + VTK input).\n"
            "Use --expert to reveal advanced solver options."
        ),
    )

    p.add_argument(
        "--expert",
        action="store_true",
        help="Show/enable expert options in --help.",
    )
    p.add_argument("--input", type=Path, required=True, help="JSON analysis description.")
    p.add_argument("--output", type=Path, default=None, help="CSV output (overrides output_file).")

    p.add_argument(
        "--plot",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable/disable 3D plot of the surface and field points.",
    )
    p.add_argument(
        "--parallel",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable/disable solving frequencies in parallel worker processes.",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help="Process pool size (when --parallel).",
    )
    p.add_argument(
        "--on-singular",
        choices=[s.value for s in SweepPolicy],
        default=SweepPolicy.ABORT.value,
        help="Abort the sweep or skip the frequency when the system is singular.",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )

    if expert:
        g = p.add_argument_group("Expert options")

        # BEM (unset options keep the values from the input file)
        g.add_argument("--quad-order", type=int, choices=[1, 3, 7], default=None)
        g.add_argument("--tau-near", type=float, default=None)
        g.add_argument("--tol-near", type=float, default=None)
        g.add_argument("--max-subdiv", type=int, default=None)
        g.add_argument("--jump-term", choices=["half", "solid_angle"], default=None)
        g.add_argument("--coincidence-tol", type=float, default=None)
        g.add_argument("--pivot-tol", type=float, default=None)

        # VTK array names
        g.add_argument("--body-array", type=str, default="body_index", help="CellData array name for body tags.")

    return p


def _solver_overrides(args) -> dict:
    names = {
        "quad_order": "quad_order",
        "tau_near": "TAU_NEAR",
        "tol_near": "TOL_NEAR",
        "max_subdiv": "MAX_SUBDIV",
        "jump_term": "jump_term",
        "coincidence_tol": "coincidence_tol",
        "pivot_tol": "pivot_tol",
    }
    out = {}
    for arg, field in names.items():
        value = getattr(args, arg, None)
        if value is not None:
            out[field] = value
    return out


def _plot(analysis: Analysis) -> None:
    import matplotlib.pyplot as plt

    from helmholtz_bem.viz.plotting import plot_field_points, plot_surface, set_axes_equal

    solved = analysis.state
    pre = solved.preprocessed
    fig = plt.figure()
    ax = fig.add_subplot(111, projection="3d")
    ax.set_axis_off()
    plot_surface(ax, pre.mesh, pre.eq_map.element_ids)
    if solved.results and pre.field_points.shape[0]:
        last = solved.results[-1]
        plot_field_points(ax, pre.field_points, np.abs(last.pressure(pre.user_input.mass_density)),
                          label=f"|p| at {last.frequency:g} Hz")
    set_axes_equal(ax)
    ax.legend()
    plt.show()


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        import sys
        argv = sys.argv[1:]

    expert = _has_expert_flag(argv)
    parser = build_argparser(expert=expert)

    # If non-expert, fail gracefully when they try expert-only flags.
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        if not expert and any(tok in argv for tok in EXPERT_ONLY_TOKENS):
            parser.print_usage()
            LOG.error("Some advanced options are only available with --expert.")
        raise

    # Configure logging early so LOG.* messages are visible
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s: %(message)s",
    )

    workers = int(args.workers) if bool(args.parallel) else 1
    if bool(args.parallel):
        LOG.info("Parallel frequency sweep enabled with %d worker(s).", workers)

    try:
        user_input = read_input_json(args.input)
        overrides = _solver_overrides(args)
        if overrides:
            solver = dataclasses.replace(user_input.solver, **overrides).validate()
            user_input = dataclasses.replace(user_input, solver=solver)
        if bool(args.parallel) and len(user_input.frequency) == 1:
            warnings.warn(
                "--parallel has no effect for a single frequency.",
                RuntimeWarning,
                stacklevel=2,
            )

        analysis = Analysis(body_array=getattr(args, "body_array", "body_index"))
        analysis.set_input(user_input)

        def progress(i: int, n: int, f: float) -> None:
            LOG.debug("progress: %d/%d (%g Hz)", i + 1, n, f)

        solved = analysis.run(policy=SweepPolicy(args.on_singular), workers=workers, callback=progress)
        for failure in solved.failures:
            LOG.warning("Frequency %g Hz skipped: %s", failure.frequency, failure.reason)

        output = args.output or user_input.output_file
        if output is not None:
            analysis.write_results(output)
        else:
            LOG.info("No output file configured; results not written.")
    except (ConfigurationError, FileNotFoundError) as exc:
        LOG.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION
    except SingularSystemError as exc:
        LOG.error("Singular system: %s", exc)
        return EXIT_SINGULAR

    if bool(args.plot):
        _plot(analysis)

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
