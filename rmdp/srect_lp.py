import logging

import numpy as np
import pulp

from rmdp.definitions import is_probability_dist
from rmdp.errors import ConfigurationError, InvalidBudget, InvalidDistribution, OptimizationInfeasible

log = logging.getLogger(__name__)

NORMS = ('l1', 'linf')


def srect_solve_pulp(z, pbar, budget, weights=None, norm='l1', policy=None):
    """
    Solve the s-rectangular Bellman update with a linear program.

    max_d min_p  sum_a d_a z_a^T p_a
    s.t. 1^T d = 1, d >= 0
         sum_a ||p_a - pbar_a||_{w_a} <= budget
         1^T p_a = 1, p_a >= 0

    The inner minimization is dualized (x_a for 1^T p_a = 1, y^p and y^n for
    the two sides of |p_a - pbar_a| <= theta_a, lambda for the budget),
    which turns the max-min into one LP:

    max  sum_a (x_a - pbar_a^T (y^p_a - y^n_a)) - budget * lambda
    s.t. x_a - y^p_a + y^n_a <= d_a z_a
         y^p_as + y^n_as - lambda w_as <= 0           (l1, one per next state)
         sum_s (y^p_as + y^n_as) - lambda w_a <= 0    (linf, one per action)
         y^p, y^n, lambda >= 0

    When policy is given, d is pinned to it instead of optimized.

    Returns the objective, the policy d and the budget each action
    received, read from the duals of the theta constraints.
    """
    nactions = len(z)
    prob = pulp.LpProblem("srect", pulp.LpMaximize)

    x = [pulp.LpVariable(f"x_{a}") for a in range(nactions)]
    d = [pulp.LpVariable(f"d_{a}", lowBound=0) for a in range(nactions)]
    lam = pulp.LpVariable("lambda", lowBound=0)

    if policy is not None:
        for a in range(nactions):
            prob += (d[a] == float(policy[a]), f"pi_{a}")
    else:
        prob += (pulp.lpSum(d) == 1, "pi")

    objective = []
    theta_names = []
    for a in range(nactions):
        objective.append(x[a])
        z_dual = []
        for s in range(len(pbar[a])):
            yp = pulp.LpVariable(f"yp_{a}_{s}", lowBound=0)
            yn = pulp.LpVariable(f"yn_{a}_{s}", lowBound=0)
            objective.append(-float(pbar[a][s]) * yp)
            objective.append(float(pbar[a][s]) * yn)
            prob += (x[a] - yp + yn - float(z[a][s]) * d[a] <= 0, f"P_{a}_{s}")
            if norm == 'l1':
                weight = 1.0 if weights is None else float(weights[a][s])
                name = f"psi_{a}_{s}"
                prob += (yp + yn - weight * lam <= 0, name)
                theta_names.append((a, weight, name))
            else:
                z_dual.extend([yp, yn])
        if norm == 'linf':
            weight = 1.0 if weights is None else float(weights[a])
            name = f"theta_{a}"
            prob += (pulp.lpSum(z_dual) - weight * lam <= 0, name)
            theta_names.append((a, weight, name))

    objective.append(-float(budget) * lam)
    prob += pulp.lpSum(objective)

    status = prob.solve(pulp.PULP_CBC_CMD(msg=False))
    if status != pulp.LpStatusOptimal:
        raise OptimizationInfeasible(f"LP solver returned status {pulp.LpStatus[status]}")

    result_policy = np.array([pulp.value(v) or 0.0 for v in d], dtype=np.float64)
    budgets = np.zeros(nactions, dtype=np.float64)
    for a, weight, name in theta_names:
        pi = prob.constraints[name].pi
        # the dual of a theta constraint is the deviation theta itself;
        # solvers differ in the sign convention for maximization problems
        budgets[a] += weight * abs(pi or 0.0)
    return float(pulp.value(prob.objective)), result_policy, budgets


def srect_solve(z, pbar, budget, weights=None, norm='l1', policy=None, backend=None):
    """
    Validate the inputs of an s-rectangular update and run it on backend.

    z and pbar hold one vector per action (lengths may differ between
    actions). For norm 'l1', weights holds one vector per action; for
    'linf', one scalar per action. backend defaults to srect_solve_pulp
    and receives the same arguments.
    """
    if norm not in NORMS:
        raise ConfigurationError(f"unknown norm {norm!r}, expected one of {NORMS}")
    if len(z) != len(pbar) or len(z) == 0:
        raise InvalidDistribution("z and pbar need one entry per action")
    z = [np.asarray(v, dtype=np.float64) for v in z]
    pbar = [np.asarray(v, dtype=np.float64) for v in pbar]
    for za, pa in zip(z, pbar):
        if za.shape != pa.shape:
            raise InvalidDistribution("z and pbar differ in length for an action")
        if not is_probability_dist(pa):
            raise InvalidDistribution("nominal distribution is not a probability distribution")
    budget = float(budget)
    if np.isnan(budget) or budget < 0:
        raise InvalidBudget(f"ambiguity budget must be non-negative, got {budget}")
    if weights is not None:
        if len(weights) != len(z):
            raise InvalidDistribution("weights need one entry per action")
        if norm == 'l1':
            weights = [np.asarray(w, dtype=np.float64) for w in weights]
            if any(w.shape != za.shape or np.any(w < 0) for w, za in zip(weights, z)):
                raise InvalidDistribution("weights must be non-negative and match the nominal distributions")
        else:
            weights = np.asarray(weights, dtype=np.float64)
            if np.any(weights < 0):
                raise InvalidDistribution("weights must be non-negative")
    if policy is not None:
        policy = np.asarray(policy, dtype=np.float64)
        if policy.shape != (len(z),) or not is_probability_dist(policy):
            raise InvalidDistribution("fixed policy must be a distribution over the actions")

    if backend is None:
        backend = srect_solve_pulp
    objective, d, budgets = backend(z, pbar, budget, weights, norm, policy)
    d = np.asarray(d, dtype=np.float64)
    budgets = np.asarray(budgets, dtype=np.float64)
    if d.shape != (len(z),) or budgets.shape != (len(z),):
        raise OptimizationInfeasible("LP backend returned results of the wrong shape")
    # clean up solver round-off on the policy
    d = np.clip(d, 0.0, None)
    total = d.sum()
    if total <= 0:
        raise OptimizationInfeasible("LP backend returned an empty policy")
    return float(objective), d / total, budgets
