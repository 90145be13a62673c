import numpy as np
import pytest

from rmdp.ambiguity import Model
from rmdp.bellman import BellmanOperator, Objective
from rmdp.errors import ConfigurationError
from rmdp.RMDP import RMDP

from conftest import make_disjoint_outcomes


def _two_actions(rewards):
    """State 0 has one action per reward, each moving to terminal state 1."""
    rmdp = RMDP(0.9)
    for a, reward in enumerate(rewards):
        rmdp.add_transition(0, a, 1, 1.0, reward)
    return rmdp


def test_plain_update_maximizes():
    operator = BellmanOperator(_two_actions([1.0, 2.0]))
    decision = operator.update(0, np.zeros(2))
    assert decision.value == pytest.approx(2.0)
    assert decision.action == 1
    assert decision.distribution is None
    assert decision.nature is None


def test_ties_go_to_lowest_action():
    operator = BellmanOperator(_two_actions([1.0, 1.0, 1.0]))
    assert operator.update(0, np.zeros(2)).action == 0


def test_terminal_state():
    operator = BellmanOperator(_two_actions([1.0]))
    decision = operator.update(1, np.zeros(2))
    assert decision.value == 0.0
    assert decision.action == -1


def test_discounted_next_values():
    rmdp = RMDP(0.5)
    rmdp.add_transition(0, 0, 0, 0.5, 1.0)
    rmdp.add_transition(0, 0, 1, 0.5, 0.0)
    operator = BellmanOperator(rmdp)
    decision = operator.update(0, np.array([4.0, 8.0]))
    assert decision.value == pytest.approx(0.5 * (1.0 + 2.0) + 0.5 * 4.0)


def test_robust_and_optimistic_outcomes():
    rmdp = make_disjoint_outcomes()
    rmdp.set_uniform_budgets(1.0)
    values = np.zeros(2)

    plain = BellmanOperator(rmdp).update(0, values)
    robust = BellmanOperator(rmdp, Objective.ROBUST, Model.L1).update(0, values)
    optimistic = BellmanOperator(rmdp, Objective.OPTIMISTIC, Model.L1).update(0, values)

    assert plain.value == pytest.approx(5.0)
    assert robust.value == pytest.approx(0.0)
    assert optimistic.value == pytest.approx(10.0)
    assert np.allclose(robust.nature[0], [0.0, 1.0])
    assert np.allclose(robust.nature[1], [1.0, 0.0])
    assert np.allclose(optimistic.nature[0], [1.0, 0.0])


@pytest.mark.parametrize("model", [Model.L1, Model.LINF])
def test_action_value_returns_value_then_distribution(model):
    rmdp = make_disjoint_outcomes()
    rmdp.set_uniform_budgets(0.5)
    operator = BellmanOperator(rmdp, Objective.ROBUST, model)
    value, p = operator.action_value(rmdp.states[0].actions[0], np.zeros(2))
    assert isinstance(value, float)
    assert p.shape == (2,)
    assert p.sum() == pytest.approx(1.0)
    assert value == pytest.approx(np.dot(p, [10.0, 0.0]))
    assert value < 5.0


def test_fixed_action_is_evaluated():
    operator = BellmanOperator(_two_actions([1.0, 2.0]))
    decision = operator.update(0, np.zeros(2), policy=0)
    assert decision.value == pytest.approx(1.0)
    assert decision.action == 0


def test_randomized_policy_is_evaluated():
    operator = BellmanOperator(_two_actions([1.0, 2.0]))
    decision = operator.update(0, np.zeros(2), policy=np.array([0.5, 0.5]))
    assert decision.value == pytest.approx(1.5)
    assert np.allclose(decision.distribution, [0.5, 0.5])


def test_robust_fixed_action_keeps_nature():
    rmdp = make_disjoint_outcomes()
    rmdp.set_uniform_budgets(0.5)
    operator = BellmanOperator(rmdp, Objective.ROBUST, Model.L1)
    decision = operator.update(0, np.zeros(2), policy=1)
    assert decision.value == pytest.approx(2.5)
    assert decision.nature[0] is None
    assert np.allclose(decision.nature[1], [0.75, 0.25])


def test_shared_budget_uses_backend():
    rmdp = make_disjoint_outcomes()
    rmdp.set_state_budget(0, 1.0)
    seen = []

    def backend(z, pbar, budget, weights, norm, policy):
        seen.append((budget, norm, policy))
        return 2.5, [0.5, 0.5], [0.5, 0.5]

    operator = BellmanOperator(rmdp, Objective.ROBUST, Model.SHARED_BUDGET, lp_backend=backend)
    decision = operator.update(0, np.zeros(2))
    assert decision.value == pytest.approx(2.5)
    assert decision.action == 0
    assert np.allclose(decision.distribution, [0.5, 0.5])
    assert np.allclose(decision.budgets, [0.5, 0.5])
    # each action's nature response uses the budget it was allocated
    assert np.allclose(decision.nature[0], [0.25, 0.75])
    assert np.allclose(decision.nature[1], [0.75, 0.25])
    assert seen == [(1.0, 'l1', None)]


def test_shared_budget_fixed_action_pins_policy():
    rmdp = make_disjoint_outcomes()
    rmdp.set_state_budget(0, 1.0)
    seen = []

    def backend(z, pbar, budget, weights, norm, policy):
        seen.append(policy)
        return 0.0, policy, [1.0, 0.0]

    operator = BellmanOperator(rmdp, Objective.ROBUST, Model.SHARED_BUDGET, lp_backend=backend)
    decision = operator.update(0, np.zeros(2), policy=0)
    assert np.allclose(seen[0], [1.0, 0.0])
    assert np.allclose(decision.distribution, [1.0, 0.0])


def test_shared_budget_optimistic_spends_on_one_action():
    rmdp = make_disjoint_outcomes()
    rmdp.set_state_budget(0, 0.5)
    operator = BellmanOperator(rmdp, Objective.OPTIMISTIC, Model.SHARED_BUDGET)
    decision = operator.update(0, np.zeros(2))
    assert decision.value == pytest.approx(7.5)
    assert decision.action == 0
    assert np.allclose(decision.distribution, [1.0, 0.0])
    assert np.allclose(decision.budgets, [0.5, 0.0])


def test_shared_budget_with_lp():
    rmdp = make_disjoint_outcomes()
    rmdp.set_state_budget(0, 1.0)
    operator = BellmanOperator(rmdp, Objective.ROBUST, Model.SHARED_BUDGET)
    decision = operator.update(0, np.zeros(2))
    assert decision.value == pytest.approx(2.5, abs=1e-6)
    assert np.allclose(decision.distribution, [0.5, 0.5], atol=1e-6)


@pytest.mark.parametrize("objective,model", [
    (Objective.PLAIN, Model.L1),
    (Objective.ROBUST, Model.NONE),
    (Objective.OPTIMISTIC, Model.NONE),
])
def test_invalid_combinations(objective, model):
    with pytest.raises(ConfigurationError):
        BellmanOperator(_two_actions([1.0]), objective, model)
