"""
Nature's response to a decision: the worst-case (or best-case)
distribution within an ambiguity set around a nominal distribution.

The ambiguity models form a closed set, so each model is one plain
function and respond() dispatches on the Model tag.
"""
import logging
from enum import Enum

import numpy as np

from rmdp.definitions import EPSILON, is_probability_dist, sort_indexes
from rmdp.errors import ConfigurationError, InfeasibleAmbiguity, InvalidBudget, InvalidDistribution

log = logging.getLogger(__name__)

# Upper bound on bisection steps for the L-infinity multiplier search
LINF_BISECTION_STEPS = 64


class Model(Enum):
    NONE = 'none'
    L1 = 'l1'
    LINF = 'linf'
    SHARED_BUDGET = 'shared-budget'


class Direction(Enum):
    WORST = 'worst'
    BEST = 'best'


def check_response_inputs(pbar, z, budget, weights=None):
    """Validate and convert the inputs of a nature's response."""
    pbar = np.asarray(pbar, dtype=np.float64)
    z = np.asarray(z, dtype=np.float64)
    if pbar.ndim != 1 or not is_probability_dist(pbar):
        raise InvalidDistribution("nominal distribution is not a probability distribution")
    if z.shape != pbar.shape:
        raise InvalidDistribution(f"values have length {z.size}, nominal distribution has {pbar.size}")
    if np.any(~np.isfinite(z)):
        raise InvalidDistribution("values must be finite")
    budget = float(budget)
    if np.isnan(budget) or budget < 0:
        raise InvalidBudget(f"ambiguity budget must be non-negative, got {budget}")
    if weights is not None:
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != pbar.shape:
            raise InvalidDistribution("weights must have the same length as the nominal distribution")
        if np.any(np.isnan(weights)) or np.any(weights < 0):
            raise InvalidDistribution("weights must be non-negative")
    return pbar, z, budget, weights


def worstcase_l1(z, pbar, budget):
    """
    Minimize z^T p over ||p - pbar||_1 <= budget, 1^T p = 1, p >= 0.

    Moves budget / 2 of mass onto the smallest value, taking it from the
    largest values first.
    """
    budget = min(budget, 2.0)
    order = sort_indexes(z)

    p = np.array(pbar, dtype=np.float64)
    k = order[0]
    epsilon = min(budget / 2.0, 1.0 - p[k])
    if epsilon <= 0:
        return p, float(np.dot(p, z))
    p[k] += epsilon

    i = len(order) - 1
    while epsilon > 0 and i > 0:
        j = order[i]
        diff = min(epsilon, p[j])
        p[j] -= diff
        epsilon -= diff
        i -= 1
    return p, float(np.dot(p, z))


def _l1_w_relaxed(z, pbar, weights, lam):
    """
    Minimizer of z^T p + lam * ||p - pbar||_{1,w} over the simplex: every
    donor whose value beats the cheapest receiver gives away all its mass.
    Returns the distribution and the weighted L1 budget it uses.
    """
    cost = z + lam * weights
    receiver = int(np.argmin(cost))
    donors = (z - lam * weights) - cost[receiver] > 0
    p = np.array(pbar, dtype=np.float64)
    p[receiver] += p[donors].sum()
    p[donors] = 0.0
    used = float(np.dot(pbar[donors], weights[donors] + weights[receiver]))
    return p, used


def _l1_w_breakpoints(z, weights):
    """Multipliers at which the donor set or the receiver can change."""
    with np.errstate(divide='ignore', invalid='ignore'):
        # donor i starts giving to receiver j
        gap = z[:, None] - z[None, :]
        total = weights[:, None] + weights[None, :]
        donor = np.where((gap > 0) & (total > 0), gap / total, np.nan)
        # receiver j and k cost the same
        slope = weights[:, None] - weights[None, :]
        switch = np.where(slope != 0, -gap / slope, np.nan)
    points = np.concatenate([donor.ravel(), switch.ravel()])
    points = points[np.isfinite(points) & (points > 0)]
    return np.unique(points)


def worstcase_l1_w(z, pbar, budget, weights):
    """
    Minimize z^T p over ||p - pbar||_{1,w} <= budget, 1^T p = 1, p >= 0.

    The budget used by the relaxed solution is monotone in the multiplier
    of the budget constraint and only changes at finitely many breakpoints.
    A bisection over the breakpoints finds the two relaxed solutions that
    bracket the budget; the optimum mixes them to use the budget exactly.
    """
    breaks = _l1_w_breakpoints(z, weights)
    # one multiplier strictly inside each segment, largest first
    if breaks.size == 0:
        points = np.array([1.0])
    else:
        inner = (breaks[:-1] + breaks[1:]) / 2.0
        points = np.concatenate([[breaks[-1] * 2.0 + 1.0], inner[::-1], [breaks[0] / 2.0]])

    p_last, used_last = _l1_w_relaxed(z, pbar, weights, points[-1])
    if used_last <= budget:
        return p_last, float(np.dot(p_last, z))

    # used(points[lo]) <= budget < used(points[hi])
    lo, hi = 0, len(points) - 1
    p_lo, used_lo = _l1_w_relaxed(z, pbar, weights, points[lo])
    p_hi, used_hi = p_last, used_last
    if used_lo > budget:
        # only possible through rounding; nothing can move
        return np.array(pbar, dtype=np.float64), float(np.dot(pbar, z))
    while hi - lo > 1:
        mid = (lo + hi) // 2
        p_mid, used_mid = _l1_w_relaxed(z, pbar, weights, points[mid])
        if used_mid <= budget:
            lo, p_lo, used_lo = mid, p_mid, used_mid
        else:
            hi, p_hi, used_hi = mid, p_mid, used_mid

    theta = (budget - used_lo) / (used_hi - used_lo)
    p = (1.0 - theta) * p_lo + theta * p_hi
    return p, float(np.dot(p, z))


def worstcase_linf(z, pbar, budget, weights=None, steps=LINF_BISECTION_STEPS):
    """
    Minimize z^T p over |p_i - pbar_i| <= budget / w_i, 1^T p = 1, p >= 0.

    Bisection on the multiplier x of the simplex constraint: values below x
    sit at their upper bound, the rest at their lower bound. The band left
    after the bisection is filled in ascending order of values.
    """
    if weights is None:
        radius = np.full(pbar.shape, budget)
    else:
        safe = np.where(weights > 0, weights, 1.0)
        radius = np.where(weights > 0, budget / safe, np.inf)
    lower = np.maximum(pbar - radius, 0.0)
    upper = np.minimum(pbar + radius, 1.0)
    if lower.sum() > 1.0 + EPSILON or upper.sum() < 1.0 - EPSILON:
        raise InfeasibleAmbiguity("L-infinity ambiguity set contains no probability distribution")

    def mass(x):
        return float(np.where(z < x, upper, lower).sum())

    lo = float(z.min())
    hi = float(z.max()) + 1.0
    for _ in range(int(steps)):
        if hi - lo <= EPSILON:
            break
        mid = (lo + hi) / 2.0
        if mass(mid) <= 1.0:
            lo = mid
        else:
            hi = mid

    p = np.where(z < lo, upper, lower)
    remaining = 1.0 - p.sum()
    band = np.flatnonzero((z >= lo) & (z < hi))
    for i in band[sort_indexes(z[band])]:
        if remaining <= 0:
            break
        add = min(remaining, upper[i] - p[i])
        p[i] += add
        remaining -= add
    if abs(p.sum() - 1.0) > EPSILON:
        raise InfeasibleAmbiguity("could not restore a probability distribution within the L-infinity box")
    return p, float(np.dot(p, z))


def _l1_response(z, pbar, budget, weights, steps):
    if weights is None:
        return worstcase_l1(z, pbar, budget)
    return worstcase_l1_w(z, pbar, budget, weights)


def _linf_response(z, pbar, budget, weights, steps):
    return worstcase_linf(z, pbar, budget, weights, steps)


_WORSTCASE = {
    Model.L1: _l1_response,
    Model.LINF: _linf_response,
}


def respond(pbar, z, budget, model=Model.L1, weights=None, direction=Direction.WORST,
            steps=LINF_BISECTION_STEPS, check=True):
    """
    Nature's response within the ambiguity set of the given model.

    Returns the adjusted distribution and the objective p^T z. For
    direction BEST the response maximizes instead of minimizing.
    """
    model = Model(model)
    direction = Direction(direction)
    if check:
        pbar, z, budget, weights = check_response_inputs(pbar, z, budget, weights)
    else:
        pbar = np.asarray(pbar, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)

    if model is Model.SHARED_BUDGET:
        raise ConfigurationError("shared-budget ambiguity couples actions; use the s-rectangular optimizer")
    if model is Model.NONE or budget == 0 and (weights is None or np.all(weights > 0)):
        return np.array(pbar, dtype=np.float64), float(np.dot(pbar, z))

    if direction is Direction.WORST:
        return _WORSTCASE[model](z, pbar, budget, weights, steps)
    p, objective = _WORSTCASE[model](-z, pbar, budget, weights, steps)
    return p, -objective
