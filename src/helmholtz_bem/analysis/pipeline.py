# helmholtz_bem/analysis/pipeline.py
"""
Frequency sweep as a chain of immutable pipeline states:

    configure(user_input, mesh)  -> Configured
    preprocess(configured)       -> Preprocessed   (equation map, field points)
    run_sweep(preprocessed)      -> Solved         (one FPResult per frequency)

Each frequency is independent: matrices are assembled, solved and projected
from scratch and discarded afterwards.
"""
from __future__ import annotations

import logging
import threading
import warnings
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

import numpy as np

from ..bem.assembly import ProblemType, assemble_field, assemble_surface, check_field_points
from ..bem.incident import WaveType, incident_field
from ..bem.quadrature import BEMConfig
from ..bem.solve import project_field, radiated_power, solve
from ..bem.system import build_system
from ..errors import ConfigurationError, SingularSystemError
from ..mesh.preprocess import EquationMap, Mesh, build_equation_map
from .input_data import UserInput, read_input_json, read_input_string
from .postprocess import FPResult, write_fp_csv, write_point_sweep_csv

LOG = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, float], None]


class SweepPolicy(Enum):
    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class Configured:
    user_input: UserInput
    mesh: Mesh
    config: BEMConfig


@dataclass(frozen=True, slots=True)
class Preprocessed:
    user_input: UserInput
    mesh: Mesh
    config: BEMConfig
    eq_map: EquationMap
    field_points: np.ndarray


@dataclass(frozen=True, slots=True)
class FrequencyFailure:
    frequency: float
    reason: str


@dataclass(frozen=True, slots=True)
class Solved:
    preprocessed: Preprocessed
    results: tuple[FPResult, ...]
    failures: tuple[FrequencyFailure, ...] = ()
    cancelled: bool = False

    @property
    def frequencies(self) -> tuple[float, ...]:
        return tuple(r.frequency for r in self.results)

# ----------------------------- stages ------------------------------------
def configure(user_input: UserInput, mesh: Mesh, config: BEMConfig | None = None) -> Configured:
    user_input.validate()
    cfg = (config or user_input.solver).validate()
    problem = ProblemType(user_input.problem_type)
    wave = user_input.incident_wave
    if (
        problem is ProblemType.INTERIOR
        and WaveType(wave.wave_type) is WaveType.PLANE_WAVE
        and complex(wave.amplitude) != 0
    ):
        raise ConfigurationError("a plane incident wave is not defined for an Interior problem")
    if not isinstance(mesh, Mesh):
        raise ConfigurationError(f"mesh must be a Mesh, got {type(mesh).__name__}")
    return Configured(user_input=user_input, mesh=mesh, config=cfg)


def preprocess(configured: Configured) -> Preprocessed:
    ui = configured.user_input
    eq_map = build_equation_map(configured.mesh, ui.body_index)
    # shape check of per-entity boundary values, once for the whole sweep
    ui.surface_bc.values(len(eq_map))
    field_points = check_field_points(configured.mesh, eq_map, ui.field_points, configured.config)
    field_points = np.array(field_points, dtype=np.float64)
    field_points.setflags(write=False)
    LOG.info("Preprocessed: %d unknowns, %d field points, %d frequencies",
             len(eq_map), field_points.shape[0], len(ui.frequency))
    return Preprocessed(
        user_input=ui,
        mesh=configured.mesh,
        config=configured.config,
        eq_map=eq_map,
        field_points=field_points,
    )


def solve_frequency(pre: Preprocessed, frequency: float) -> FPResult:
    """Assembling -> Solving -> Projecting for one frequency."""
    ui = pre.user_input
    cfg = pre.config
    problem = ProblemType(ui.problem_type)
    k = ui.wavenumber(frequency)
    omega = ui.omega(frequency)

    LOG.debug("f=%g Hz: assembling surface matrices (k=%.6g)", frequency, k)
    H, G = assemble_surface(pre.mesh, pre.eq_map, k, cfg, problem)
    phi_inc = incident_field(ui.incident_wave, k, pre.eq_map.centroids)
    system = build_system(H, G, ui.surface_bc, phi_inc, omega=omega, mass_density=ui.mass_density)
    del H, G

    LOG.debug("f=%g Hz: solving (direct LU)", frequency)
    x = solve(system.A, system.b, frequency=frequency, pivot_tol=cfg.pivot_tol)
    surface = system.recover(x)

    LOG.debug("f=%g Hz: projecting onto %d field points", frequency, pre.field_points.shape[0])
    M, L = assemble_field(pre.mesh, pre.eq_map, pre.field_points, k, cfg, problem)
    phi_inc_fp = incident_field(ui.incident_wave, k, pre.field_points)
    phi_fp = project_field(M, L, surface, phi_inc_fp)

    power = radiated_power(surface, pre.eq_map.areas, omega=omega,
                           mass_density=ui.mass_density, problem=problem)
    return FPResult(frequency=frequency, phi_fp=phi_fp, phi_inc_fp=phi_inc_fp, radiated_power=power)

# ---------------- ProcessPool worker state ----------------
_WORKER_PREPROCESSED: Preprocessed | None = None


def _init_worker(pre: Preprocessed):
    """
    Runs once per worker process (spawn-safe).
    Stores the read-only preprocessed state in a process-local global so it is
    not pickled for every submitted frequency.
    """
    global _WORKER_PREPROCESSED
    _WORKER_PREPROCESSED = pre


def _solve_frequency_worker(index: int, frequency: float):
    """Solve one frequency; warnings raised in the worker are returned for the parent to re-emit."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = solve_frequency(_WORKER_PREPROCESSED, frequency)
    return index, result, [(w.category, str(w.message)) for w in caught]
# --------------------------------------------------------------------------


def _record_singular(exc: SingularSystemError, frequency: float, policy: SweepPolicy,
                     failures: list[FrequencyFailure]) -> None:
    if policy is SweepPolicy.ABORT:
        raise exc
    LOG.warning("Skipping frequency %g Hz: %s", frequency, exc)
    failures.append(FrequencyFailure(frequency=frequency, reason=str(exc)))


def run_sweep(
    pre: Preprocessed,
    *,
    policy: SweepPolicy = SweepPolicy.ABORT,
    workers: int = 1,
    callback: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> Solved:
    """
    Solve every frequency of ``pre.user_input``.

    A SingularSystemError either aborts the sweep (re-raised, ABORT) or is
    recorded in ``Solved.failures`` (SKIP). ConfigurationError is always fatal.
    ``cancel_event`` is checked between frequencies. Results come back in input
    frequency order whatever the completion order.
    """
    policy = SweepPolicy(policy)
    freqs = tuple(pre.user_input.frequency)
    n = len(freqs)
    if int(workers) > 1 and n > 1:
        return _run_sweep_parallel(pre, freqs, policy, int(workers), callback, cancel_event)

    results: list[FPResult] = []
    failures: list[FrequencyFailure] = []
    for i, f in enumerate(freqs):
        if cancel_event is not None and cancel_event.is_set():
            LOG.info("Sweep cancelled after %d of %d frequencies", i, n)
            return Solved(pre, tuple(results), tuple(failures), cancelled=True)
        try:
            results.append(solve_frequency(pre, f))
        except SingularSystemError as exc:
            _record_singular(exc, f, policy, failures)
        LOG.info("Frequency %g Hz done (%d of %d)", f, i + 1, n)
        if callback is not None:
            callback(i, n, f)
    return Solved(pre, tuple(results), tuple(failures))


def _run_sweep_parallel(pre, freqs, policy, workers, callback, cancel_event) -> Solved:
    n = len(freqs)
    done_results: dict[int, FPResult] = {}
    failures: dict[int, FrequencyFailure] = {}
    cancelled = False
    LOG.info("Parallel sweep enabled with %d worker(s).", workers)

    pool = ProcessPoolExecutor(max_workers=min(workers, n), initializer=_init_worker, initargs=(pre,))
    try:
        pending = {pool.submit(_solve_frequency_worker, i, f): i for i, f in enumerate(freqs)}
        completed = 0
        while pending:
            finished, _ = wait(pending, timeout=0.2, return_when=FIRST_COMPLETED)
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                for fut in pending:
                    fut.cancel()
            for fut in finished:
                i = pending.pop(fut)
                if fut.cancelled():
                    continue
                try:
                    idx, res, caught = fut.result()
                    done_results[idx] = res
                    for category, message in caught:
                        warnings.warn(message, category, stacklevel=2)
                except SingularSystemError as exc:
                    fl: list[FrequencyFailure] = []
                    _record_singular(exc, freqs[i], policy, fl)
                    failures[i] = fl[0]
                completed += 1
                LOG.info("Frequency %g Hz done (%d of %d)", freqs[i], completed, n)
                if callback is not None:
                    callback(i, n, freqs[i])
            if cancelled:
                pending = {f: i for f, i in pending.items() if not f.cancelled()}
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    if cancelled:
        LOG.info("Sweep cancelled after %d of %d frequencies", len(done_results) + len(failures), n)
    return Solved(
        pre,
        tuple(done_results[i] for i in sorted(done_results)),
        tuple(failures[i] for i in sorted(failures)),
        cancelled=cancelled,
    )

# ----------------------------- facade ------------------------------------
class Analysis:
    """
    Holds the current pipeline state and moves it forward:

        a = Analysis()
        a.input_from_file("case.json")
        a.run()
        a.write_results_at_frequency(0)

    Calling a stage out of order raises ConfigurationError.
    """

    def __init__(self, *, body_array: str = "body_index"):
        self.body_array = body_array
        self._state: Configured | Preprocessed | Solved | None = None

    @property
    def state(self):
        return self._state

    def set_input(self, user_input: UserInput, mesh: Mesh | None = None,
                  config: BEMConfig | None = None) -> Configured:
        if mesh is None:
            if user_input.mesh_file is None:
                raise ConfigurationError("no mesh given and input has no mesh_file")
            from ..mesh.loader import load_mesh_from_vtk

            mesh = load_mesh_from_vtk(user_input.mesh_file, body_array=self.body_array)
        self._state = configure(user_input, mesh, config)
        return self._state

    def input_from_file(self, path: Path, mesh: Mesh | None = None) -> Configured:
        return self.set_input(read_input_json(path), mesh)

    def input_from_string(self, text: str, mesh: Mesh | None = None) -> Configured:
        return self.set_input(read_input_string(text), mesh)

    def run(self, *, policy: SweepPolicy = SweepPolicy.ABORT, workers: int = 1,
            callback: ProgressCallback | None = None,
            cancel_event: threading.Event | None = None) -> Solved:
        if isinstance(self._state, Configured):
            LOG.info("Preprocessing...")
            self._state = preprocess(self._state)
        if not isinstance(self._state, Preprocessed):
            raise ConfigurationError("run() needs input first (set_input / input_from_file)")
        self._state = run_sweep(self._state, policy=policy, workers=workers,
                                callback=callback, cancel_event=cancel_event)
        return self._state

    def _solved(self) -> Solved:
        if not isinstance(self._state, Solved):
            raise ConfigurationError("no results yet; call run() first")
        return self._state

    @property
    def results(self) -> tuple[FPResult, ...]:
        return self._solved().results

    def _output_path(self, path: Path | None) -> Path:
        path = path or self._solved().preprocessed.user_input.output_file
        if path is None:
            raise ConfigurationError("no output path given and input has no output_file")
        return Path(path)

    def write_results(self, path: Path | None = None) -> Path:
        solved = self._solved()
        pre = solved.preprocessed
        return write_fp_csv(self._output_path(path), solved.results, pre.field_points,
                            pre.user_input.mass_density)

    def write_results_at_frequency(self, index: int, path: Path | None = None) -> Path:
        solved = self._solved()
        if not 0 <= index < len(solved.results):
            raise ConfigurationError(f"no result with index {index} ({len(solved.results)} available)")
        pre = solved.preprocessed
        return write_fp_csv(self._output_path(path), [solved.results[index]], pre.field_points,
                            pre.user_input.mass_density)

    def write_results_at_point(self, point_index: int, path: Path | None = None) -> Path:
        solved = self._solved()
        pre = solved.preprocessed
        return write_point_sweep_csv(self._output_path(path), solved.results, pre.field_points,
                                     point_index, pre.user_input.mass_density)
