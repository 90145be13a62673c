"""
Value iteration and modified policy iteration for plain, robust and
optimistic MDPs.

Gauss-Seidel sweeps update the value function in place and run
sequentially. Jacobi sweeps compute every state from a snapshot of the
previous iterate and can be spread over a thread pool.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from tqdm import tqdm

from rmdp.ambiguity import LINF_BISECTION_STEPS, Model
from rmdp.bellman import BellmanOperator, Objective
from rmdp.definitions import MAXITER, SOLPREC, is_probability_dist
from rmdp.errors import ConfigurationError, InvalidDistribution
from rmdp.Solution import CONVERGED, ITERATION_LIMIT, TIME_LIMIT, Solution
from rmdp.utils import dotdict

log = logging.getLogger(__name__)

DEFAULT_CONFIG = dotdict({
    'algorithm': 'mpi',
    'sweep': 'gs',
    'objective': 'plain',
    'ambiguity': None,          # 'none' for plain, 'l1' otherwise
    'norm': 'l1',               # norm of the shared budget
    'policy': None,
    'maxresidual': SOLPREC,
    'iterations': MAXITER,
    'timeout': None,            # seconds
    'value_init': None,
    'mpi_eval_sweeps': 50,
    'mpi_eval_tolerance': 0.5,
    'linf_bisection_steps': LINF_BISECTION_STEPS,
    'transitions': 'normalize',
    'n_jobs': 1,
    'progress': False,
    'lp_backend': None,
})

ALGORITHMS = {
    'vi': 'vi',
    'value-iteration': 'vi',
    'mpi': 'mpi',
    'modified-policy-iteration': 'mpi',
}


def make_config(config=None, **kwargs):
    """Merge config and keyword overrides over DEFAULT_CONFIG."""
    merged = dotdict(DEFAULT_CONFIG)
    for source in (config or {}, kwargs):
        for key, value in source.items():
            if key not in DEFAULT_CONFIG:
                raise ConfigurationError(f"unknown solver option {key!r}")
            merged[key] = value

    if merged.algorithm not in ALGORITHMS:
        raise ConfigurationError(f"unknown algorithm {merged.algorithm!r}")
    merged.algorithm = ALGORITHMS[merged.algorithm]
    if merged.sweep not in ('gs', 'jacobi'):
        raise ConfigurationError(f"unknown sweep {merged.sweep!r}")
    try:
        merged.objective = Objective(merged.objective)
        if merged.ambiguity is None:
            merged.ambiguity = Model.NONE if merged.objective is Objective.PLAIN else Model.L1
        merged.ambiguity = Model(merged.ambiguity)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    if not merged.maxresidual > 0:
        raise ConfigurationError("maxresidual must be positive")
    if int(merged.iterations) < 1:
        raise ConfigurationError("iterations must be a positive integer")
    if merged.timeout is not None and not merged.timeout > 0:
        raise ConfigurationError("timeout must be a positive number of seconds")
    if int(merged.mpi_eval_sweeps) < 0:
        raise ConfigurationError("mpi_eval_sweeps must be non-negative")
    if int(merged.n_jobs) < 1:
        raise ConfigurationError("n_jobs must be a positive integer")
    if merged.algorithm == 'vi' and merged.sweep == 'gs' and merged.n_jobs > 1:
        raise ConfigurationError("Gauss-Seidel sweeps are sequential; use sweep='jacobi' with n_jobs > 1")
    return merged


def stopping_threshold(maxresidual, discount):
    """
    Residual at which the value function is within maxresidual / 2 of the
    fixed point.
    """
    if discount == 0:
        return maxresidual
    return maxresidual * (1.0 - discount) / (2.0 * discount)


def check_policy(rmdp, policy):
    """
    Normalize a fixed (or partial) policy to one entry per state: None to
    optimize, an action index, or a distribution over actions.
    """
    nstates = rmdp.state_count()
    if policy is None:
        return [None] * nstates
    if len(policy) != nstates:
        raise ConfigurationError(f"policy has {len(policy)} entries for {nstates} states")

    result = []
    for s, entry in enumerate(policy):
        nactions = rmdp.states[s].action_count()
        if entry is None:
            result.append(None)
        elif np.ndim(entry) == 0:
            entry = int(entry)
            if entry < 0:
                result.append(None)
            elif entry >= nactions:
                raise ConfigurationError(f"policy action {entry} is out of range for state {s}")
            else:
                result.append(entry)
        else:
            entry = np.asarray(entry, dtype=np.float64)
            if entry.shape != (nactions,) or not is_probability_dist(entry):
                raise InvalidDistribution(f"policy of state {s} is not a distribution over its actions")
            result.append(entry)
    return result


class _Sweeper:
    """Applies the Bellman operator to every state."""

    def __init__(self, operator, nstates, executor=None, n_jobs=1):
        self.operator = operator
        self.nstates = nstates
        self.executor = executor
        self.chunks = np.array_split(np.arange(nstates), n_jobs) if executor is not None else None

    def gauss_seidel(self, values, policy):
        decisions = [None] * self.nstates
        for s in range(self.nstates):
            decisions[s] = self.operator.update(s, values, policy[s])
            values[s] = decisions[s].value
        return values, decisions

    def _run(self, states, values, out, decisions, policy):
        for s in states:
            decision = self.operator.update(s, values, policy[s])
            out[s] = decision.value
            decisions[s] = decision

    def jacobi(self, values, policy):
        snapshot = values.copy()
        snapshot.setflags(write=False)
        out = np.empty_like(values)
        decisions = [None] * self.nstates
        if self.executor is None:
            self._run(range(self.nstates), snapshot, out, decisions, policy)
        else:
            futures = [self.executor.submit(self._run, chunk, snapshot, out, decisions, policy)
                       for chunk in self.chunks]
            for f in futures:
                f.result()
        return out, decisions


def _progress(config, desc):
    if config.progress:
        return tqdm(total=int(config.iterations), desc=desc)
    return None


def _initial_values(rmdp, config):
    nstates = rmdp.state_count()
    if config.value_init is None:
        return np.zeros(nstates)
    values = np.array(config.value_init, dtype=np.float64)
    if values.shape != (nstates,):
        raise ConfigurationError(f"value_init has shape {values.shape}, expected ({nstates},)")
    return values


def _prepare(rmdp, config):
    if rmdp.state_count() == 0:
        raise InvalidDistribution("RMDP has no states")
    rmdp.validate(config.transitions)
    policy = check_policy(rmdp, config.policy)
    operator = BellmanOperator(rmdp, config.objective, config.ambiguity, config.norm,
                               config.linf_bisection_steps, config.lp_backend)
    values = _initial_values(rmdp, config)
    return operator, policy, values


def _executor(config):
    if int(config.n_jobs) > 1:
        return ThreadPoolExecutor(max_workers=int(config.n_jobs))
    return None


def _finish(rmdp, values, decisions, residuals, iterations, start, status, bar):
    if bar is not None:
        bar.close()
    elapsed = time.perf_counter() - start
    residual = residuals[-1] if residuals else float('inf')
    if status == CONVERGED:
        log.info('Converged after %d iterations, residual %.3g, %.3fs', iterations, residual, elapsed)
    else:
        log.warning('Stopped on %s limit after %d iterations, residual %.3g', status, iterations, residual)
    counts = [state.action_count() for state in rmdp.states]
    return Solution(values, decisions, counts, residuals, iterations, elapsed, status)


def value_iteration(rmdp, config=None, **kwargs):
    """
    Value iteration with Gauss-Seidel (config.sweep == 'gs') or Jacobi
    sweeps. Stops when the sup-norm change of the value function drops to
    stopping_threshold(maxresidual, discount), or when the iteration or
    time budget is exhausted.
    """
    config = make_config(config, **kwargs)
    operator, policy, values = _prepare(rmdp, config)
    threshold = stopping_threshold(config.maxresidual, rmdp.discount)
    log.info('Value iteration (%s, %s/%s) on %d states', config.sweep, config.objective.value,
             config.ambiguity.value, rmdp.state_count())

    executor = _executor(config)
    sweeper = _Sweeper(operator, rmdp.state_count(), executor, int(config.n_jobs))
    bar = _progress(config, 'Value iteration')
    start = time.perf_counter()
    residuals = []
    status = ITERATION_LIMIT
    iterations = 0
    try:
        for i in range(int(config.iterations)):
            previous = values.copy()
            if config.sweep == 'gs':
                values, decisions = sweeper.gauss_seidel(values, policy)
            else:
                values, decisions = sweeper.jacobi(values, policy)
            residual = float(np.max(np.abs(values - previous)))
            residuals.append(residual)
            iterations = i + 1
            log.debug('Iteration %d residual %.6g', iterations, residual)
            if bar is not None:
                bar.update(1)
                bar.set_postfix(residual=residual)

            if residual <= threshold:
                status = CONVERGED
                break
            if config.timeout is not None and time.perf_counter() - start >= config.timeout:
                status = TIME_LIMIT
                break
    finally:
        if executor is not None:
            executor.shutdown()
    return _finish(rmdp, values, decisions, residuals, iterations, start, status, bar)


def vi_gs(rmdp, config=None, **kwargs):
    kwargs['sweep'] = 'gs'
    return value_iteration(rmdp, config, algorithm='vi', **kwargs)


def vi_jac(rmdp, config=None, **kwargs):
    kwargs['sweep'] = 'jacobi'
    return value_iteration(rmdp, config, algorithm='vi', **kwargs)


def _greedy(policy, decisions):
    greedy = []
    for fixed, d in zip(policy, decisions):
        if fixed is not None:
            greedy.append(fixed)
        elif d.distribution is not None:
            greedy.append(d.distribution)
        elif d.action >= 0:
            greedy.append(d.action)
        else:
            greedy.append(None)
    return greedy


def mpi_jac(rmdp, config=None, **kwargs):
    """
    Modified policy iteration with Jacobi sweeps.

    Each iteration runs one improvement sweep, which yields the greedy
    policy and the residual, then up to mpi_eval_sweeps evaluation sweeps
    with that policy fixed. Evaluation stops early once its residual is
    below mpi_eval_tolerance times the improvement residual.
    """
    config = make_config(config, algorithm='mpi', **kwargs)
    operator, policy, values = _prepare(rmdp, config)
    threshold = stopping_threshold(config.maxresidual, rmdp.discount)
    log.info('Modified policy iteration (%s/%s) on %d states', config.objective.value,
             config.ambiguity.value, rmdp.state_count())

    executor = _executor(config)
    sweeper = _Sweeper(operator, rmdp.state_count(), executor, int(config.n_jobs))
    bar = _progress(config, 'Policy iteration')
    start = time.perf_counter()
    residuals = []
    status = ITERATION_LIMIT
    iterations = 0
    try:
        for i in range(int(config.iterations)):
            improved, decisions = sweeper.jacobi(values, policy)
            residual = float(np.max(np.abs(improved - values)))
            values = improved
            residuals.append(residual)
            iterations = i + 1
            if bar is not None:
                bar.update(1)
                bar.set_postfix(residual=residual)

            if residual <= threshold:
                log.debug('Iteration %d residual %.6g', iterations, residual)
                status = CONVERGED
                break
            if config.timeout is not None and time.perf_counter() - start >= config.timeout:
                status = TIME_LIMIT
                break

            greedy = _greedy(policy, decisions)
            tolerance = config.mpi_eval_tolerance * residual
            sweeps = 0
            for sweeps in range(1, int(config.mpi_eval_sweeps) + 1):
                evaluated, _ = sweeper.jacobi(values, greedy)
                eval_residual = float(np.max(np.abs(evaluated - values)))
                values = evaluated
                if eval_residual <= tolerance:
                    break
                if config.timeout is not None and time.perf_counter() - start >= config.timeout:
                    status = TIME_LIMIT
                    break
            log.debug('Iteration %d residual %.6g, %d evaluation sweeps', iterations, residual, sweeps)
            if status == TIME_LIMIT:
                break
    finally:
        if executor is not None:
            executor.shutdown()
    return _finish(rmdp, values, decisions, residuals, iterations, start, status, bar)


def solve(rmdp, config=None, **kwargs):
    """
    Solve an RMDP with the algorithm named in the configuration.

    Options are given as a dict (or dotdict) and/or keyword arguments; see
    DEFAULT_CONFIG for the recognized names.
    """
    merged = make_config(config, **kwargs)
    if merged.algorithm == 'vi':
        return value_iteration(rmdp, merged)
    return mpi_jac(rmdp, merged)
