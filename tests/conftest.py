import numpy as np
import pytest

from rmdp.RMDP import RMDP


def make_random_rmdp(nstates=8, nactions=3, discount=0.9, seed=0):
    """Dense random MDP with rewards in [0, 1)."""
    rng = np.random.default_rng(seed)
    rmdp = RMDP(discount)
    for s in range(nstates):
        for a in range(nactions):
            probabilities = rng.dirichlet(np.ones(nstates))
            rewards = rng.random(nstates)
            for s_next in range(nstates):
                rmdp.add_transition(s, a, s_next, probabilities[s_next], rewards[s_next])
    return rmdp


def make_self_loop(reward=5.0, discount=0.9):
    rmdp = RMDP(discount)
    rmdp.add_transition(0, 0, 0, 1.0, reward)
    return rmdp


def make_disjoint_outcomes(discount=0.9):
    """
    State 0 has two actions, each with two equally likely outcomes that
    return to state 0: action 0 pays [10, 0] and action 1 pays [0, 10].
    State 1 moves to state 0 without reward.
    """
    rmdp = RMDP(discount)
    rmdp.add_outcome_transition(0, 0, 0, 0, 1.0, 10.0)
    rmdp.add_outcome_transition(0, 0, 1, 0, 1.0, 0.0)
    rmdp.add_outcome_transition(0, 1, 0, 0, 1.0, 0.0)
    rmdp.add_outcome_transition(0, 1, 1, 0, 1.0, 10.0)
    rmdp.add_transition(1, 0, 0, 1.0, 0.0)
    rmdp.set_uniform_distributions()
    return rmdp


@pytest.fixture
def random_rmdp():
    return make_random_rmdp()
