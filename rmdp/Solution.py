import numpy as np

CONVERGED = 'converged'
ITERATION_LIMIT = 'iterations'
TIME_LIMIT = 'time'


def _frozen(array, dtype=np.float64):
    if array is None:
        return None
    array = np.array(array, dtype=dtype)
    array.setflags(write=False)
    return array


class Solution:
    """
    Result of a solve call. All arrays are read-only.

    values:        value function, one entry per state
    policy:        chosen action per state (-1 for terminal states); for
                   randomized states the action with the largest weight
    distributions: distribution over actions for each state
    natures:       nature's distribution per state and action for robust
                   and optimistic solves, otherwise None
    budgets:       per-action share of the state budget for s-rectangular
                   solves, otherwise None
    residual:      last Bellman residual
    residuals:     residual of every iteration
    iterations:    number of iterations performed
    time:          elapsed seconds
    status:        'converged', 'iterations' or 'time'
    """

    def __init__(self, values, decisions, action_counts, residuals, iterations, time, status):
        self._values = _frozen(values)
        self._policy = _frozen([d.action for d in decisions], dtype=np.int64)
        self._randomized = any(d.distribution is not None for d in decisions)

        distributions = []
        for d, count in zip(decisions, action_counts):
            if d.distribution is not None:
                distributions.append(_frozen(d.distribution))
            else:
                onehot = np.zeros(count)
                if d.action >= 0:
                    onehot[d.action] = 1.0
                distributions.append(_frozen(onehot))
        self._distributions = tuple(distributions)

        if any(d.nature is not None for d in decisions):
            self._natures = tuple(
                None if d.nature is None else tuple(_frozen(p) for p in d.nature)
                for d in decisions)
        else:
            self._natures = None

        if any(d.budgets is not None for d in decisions):
            self._budgets = tuple(_frozen(d.budgets) for d in decisions)
        else:
            self._budgets = None

        self._residuals = tuple(float(r) for r in residuals)
        self._iterations = int(iterations)
        self._time = float(time)
        self._status = status

    @property
    def values(self):
        return self._values

    @property
    def policy(self):
        return self._policy

    @property
    def distributions(self):
        return self._distributions

    @property
    def natures(self):
        return self._natures

    @property
    def budgets(self):
        return self._budgets

    @property
    def residual(self):
        return self._residuals[-1] if self._residuals else float('inf')

    @property
    def residuals(self):
        return self._residuals

    @property
    def iterations(self):
        return self._iterations

    @property
    def time(self):
        return self._time

    @property
    def status(self):
        return self._status

    @property
    def converged(self):
        return self._status == CONVERGED

    def is_randomized(self):
        return self._randomized

    def __repr__(self):
        return (f"Solution(status={self._status!r}, iterations={self._iterations}, "
                f"residual={self.residual:.3g}, time={self._time:.3f}s)")
