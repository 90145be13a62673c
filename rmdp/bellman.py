import logging
from collections import namedtuple
from enum import Enum

import numpy as np

from rmdp.ambiguity import LINF_BISECTION_STEPS, Direction, Model, respond
from rmdp.errors import ConfigurationError
from rmdp.srect_lp import srect_solve

log = logging.getLogger(__name__)


class Objective(Enum):
    PLAIN = 'plain'
    ROBUST = 'robust'
    OPTIMISTIC = 'optimistic'


# value: updated state value
# action: chosen action (largest weight when randomized, -1 when terminal)
# distribution: action distribution when the decision is randomized, else None
# nature: nature's distribution for each action, None for plain updates
# budgets: budget each action received from a shared state budget, else None
Decision = namedtuple('Decision', ['value', 'action', 'distribution', 'nature', 'budgets'])

TERMINAL = Decision(0.0, -1, None, None, None)


def _first_max(values):
    # np.argmax returns the first index on ties
    return int(np.argmax(values))


class BellmanOperator:
    """
    Bellman update of a single state of an RMDP.

    The objective decides whether nature is absent (plain), adversarial
    (robust) or cooperative (optimistic); the ambiguity model decides
    how nature responds. A per-state policy entry fixes the decision:
    None optimizes, an int fixes an action and an array fixes a
    distribution over actions.
    """

    def __init__(self, rmdp, objective=Objective.PLAIN, model=Model.NONE, norm='l1',
                 linf_steps=LINF_BISECTION_STEPS, lp_backend=None):
        self.rmdp = rmdp
        self.objective = Objective(objective)
        self.model = Model(model)
        self.norm = norm
        self.linf_steps = linf_steps
        self.lp_backend = lp_backend

        if self.objective is Objective.PLAIN and self.model is not Model.NONE:
            raise ConfigurationError("plain objective takes no ambiguity model")
        if self.objective is not Objective.PLAIN and self.model is Model.NONE:
            raise ConfigurationError(f"{self.objective.value} objective needs an ambiguity model")
        if self.model is Model.SHARED_BUDGET and norm not in ('l1', 'linf'):
            raise ConfigurationError(f"unknown shared-budget norm {norm!r}")

        if self.objective is Objective.OPTIMISTIC:
            self.direction = Direction.BEST
        else:
            self.direction = Direction.WORST

    def action_value(self, action, values, budget=None):
        """Return (value, nature's distribution) of one action."""
        pbar = action.nominal()
        z = action.returns(values, self.rmdp.discount)
        if self.model is Model.NONE:
            return float(np.dot(pbar, z)), None
        model = self.model
        weights = action.weights
        if model is Model.SHARED_BUDGET:
            model = Model.L1 if self.norm == 'l1' else Model.LINF
            # shared L-infinity budgets are unweighted
            if model is Model.LINF:
                weights = None
        if budget is None:
            budget = action.budget
        p, value = respond(pbar, z, budget, model, weights, self.direction, self.linf_steps, check=False)
        return value, p

    def update(self, stateid, values, policy=None):
        """Return the Decision for state stateid given the value function."""
        state = self.rmdp.states[stateid]
        if state.is_terminal():
            return TERMINAL
        if self.model is Model.SHARED_BUDGET:
            return self._update_srect(state, values, policy)

        if policy is None:
            q = np.empty(state.action_count())
            nature = []
            for a, action in enumerate(state.actions):
                q[a], p = self.action_value(action, values)
                nature.append(p)
            best = _first_max(q)
            return Decision(float(q[best]), best, None, self._nature(nature), None)

        if np.ndim(policy) == 0:
            policy = int(policy)
            value, p = self.action_value(state.actions[policy], values)
            nature = [None] * state.action_count()
            nature[policy] = p
            return Decision(value, policy, None, self._nature(nature), None)

        value = 0.0
        nature = []
        for a, action in enumerate(state.actions):
            if policy[a] > 0:
                q, p = self.action_value(action, values)
                value += policy[a] * q
            else:
                p = None
            nature.append(p)
        return Decision(value, _first_max(policy), policy, self._nature(nature), None)

    def _nature(self, nature):
        if self.model is Model.NONE:
            return None
        return tuple(nature)

    def _srect_inputs(self, state, values):
        z = [action.returns(values, self.rmdp.discount) for action in state.actions]
        pbar = [action.nominal() for action in state.actions]
        weights = None
        if self.norm == 'l1' and any(action.weights is not None for action in state.actions):
            weights = [np.ones(len(p)) if action.weights is None else action.weights
                       for action, p in zip(state.actions, pbar)]
        return z, pbar, weights

    def _update_srect(self, state, values, policy):
        """
        s-rectangular update: one budget shared by all actions of the state,
        so the decision is a distribution over actions.
        """
        nactions = state.action_count()
        if policy is not None and np.ndim(policy) == 0:
            fixed = np.zeros(nactions)
            fixed[int(policy)] = 1.0
            policy = fixed
        z, pbar, weights = self._srect_inputs(state, values)

        if self.objective is Objective.OPTIMISTIC and policy is None:
            # a max-max is attained by a single action spending the whole budget
            q = np.empty(nactions)
            responses = []
            for a, action in enumerate(state.actions):
                q[a], p = self.action_value(action, values, budget=state.budget)
                responses.append(p)
            best = _first_max(q)
            distribution = np.zeros(nactions)
            distribution[best] = 1.0
            budgets = np.zeros(nactions)
            budgets[best] = state.budget
            nature = [np.array(p, dtype=np.float64) for p in pbar]
            nature[best] = responses[best]
            return Decision(float(q[best]), best, distribution, tuple(nature), budgets)

        if self.objective is Objective.OPTIMISTIC:
            objective, distribution, budgets = srect_solve(
                [-v for v in z], pbar, state.budget, weights, self.norm, policy, self.lp_backend)
            value = -objective
        else:
            value, distribution, budgets = srect_solve(
                z, pbar, state.budget, weights, self.norm, policy, self.lp_backend)
        if policy is not None:
            distribution = np.asarray(policy, dtype=np.float64)

        nature = []
        for action, budget in zip(state.actions, budgets):
            _, p = self.action_value(action, values, budget=budget)
            nature.append(p)
        return Decision(float(value), _first_max(distribution), distribution, tuple(nature), budgets)
