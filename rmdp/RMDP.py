import logging

import numpy as np

from rmdp.definitions import EPSILON, is_probability_dist
from rmdp.errors import ConfigurationError, InvalidBudget, InvalidDistribution
from rmdp.Transition import Transition

log = logging.getLogger(__name__)


def check_budget(budget):
    budget = float(budget)
    if np.isnan(budget) or budget < 0:
        raise InvalidBudget(f"ambiguity budget must be non-negative, got {budget}")
    return budget


def check_weights(weights):
    if weights is None:
        return None
    weights = np.asarray(weights, dtype=np.float64)
    if weights.ndim != 1 or np.any(np.isnan(weights)) or np.any(weights < 0):
        raise InvalidDistribution("weights must be a non-negative vector")
    return weights


class Action:
    """
    An action is either plain, with a single transition, or an outcome
    action with a list of outcome transitions and a nominal distribution
    over them.

    Outcome transitions are flattened into one array of
    (next state, probability, reward) triples; outcome k occupies
    offsets[k]:offsets[k + 1].
    """

    def __init__(self):
        self.transition = Transition()
        self.outcomes = None
        self.distribution = None
        self.budget = 0.0
        self.weights = None
        self._flat = None

    def is_outcome_action(self):
        return self.outcomes is not None

    def is_valid(self):
        if self.outcomes is None:
            return not self.transition.empty()
        return len(self.outcomes) > 0 and all(not t.empty() for t in self.outcomes)

    def add_outcome(self, outcome):
        """Return the transition of the outcome, creating outcomes as needed."""
        if self.outcomes is None:
            if not self.transition.empty():
                raise ConfigurationError("cannot add outcomes to an action with a plain transition")
            self.outcomes = []
        while len(self.outcomes) <= outcome:
            self.outcomes.append(Transition())
        self._flat = None
        return self.outcomes[outcome]

    def support_size(self):
        if self.outcomes is None:
            return len(self.transition)
        return len(self.outcomes)

    def nominal(self):
        """Baseline distribution that nature perturbs."""
        if self.outcomes is None:
            return self.transition.probabilities
        if self.distribution is None:
            n = len(self.outcomes)
            return np.full(n, 1.0 / n)
        return self.distribution

    def _compile(self):
        if self._flat is None:
            offsets = np.zeros(len(self.outcomes) + 1, dtype=np.int64)
            offsets[1:] = np.cumsum([len(t) for t in self.outcomes])
            indices = np.concatenate([t.indices for t in self.outcomes])
            probabilities = np.concatenate([t.probabilities for t in self.outcomes])
            rewards = np.concatenate([t.rewards for t in self.outcomes])
            self._flat = (indices, probabilities, rewards, offsets)
        return self._flat

    def returns(self, values, discount):
        """
        Values nature weighs with its distribution: r + discount * v(s') for
        each next state of a plain action, the expected return of each
        outcome for an outcome action.
        """
        if self.outcomes is None:
            return self.transition.returns(values, discount)
        indices, probabilities, rewards, offsets = self._compile()
        weighted = probabilities * (rewards + discount * np.asarray(values)[indices])
        return np.add.reduceat(weighted, offsets[:-1])

    def validate(self, normalize):
        transitions = [self.transition] if self.outcomes is None else self.outcomes
        for t in transitions:
            total = t.sum_probabilities()
            if total > 1.0 + EPSILON:
                raise InvalidDistribution(f"transition probabilities sum to {total} > 1")
            if total < 1.0 - EPSILON:
                if not normalize:
                    raise InvalidDistribution(f"transition probabilities sum to {total} < 1")
                t.normalize()
                self._flat = None
        if self.outcomes is not None and self.distribution is not None:
            if len(self.distribution) != len(self.outcomes):
                raise InvalidDistribution("outcome distribution length does not match the number of outcomes")
            if not is_probability_dist(self.distribution):
                raise InvalidDistribution("outcome distribution is not a probability distribution")
        if self.weights is not None and len(self.weights) != self.support_size():
            raise InvalidDistribution("weights length does not match the nominal distribution")


class State:
    def __init__(self):
        self.actions = []
        # budget shared by all actions (s-rectangular ambiguity)
        self.budget = 0.0

    def action_count(self):
        return len(self.actions)

    def is_terminal(self):
        return len(self.actions) == 0

    def get_action(self, action):
        while len(self.actions) <= action:
            self.actions.append(Action())
        return self.actions[action]


class RMDP:
    """
    Robust MDP with dense state indices 0..S-1 and state-local actions.

    States and actions are created on demand when transitions are added.
    """

    def __init__(self, discount=1.0):
        self.discount = discount
        self.states = []

    @property
    def discount(self):
        return self._discount

    @discount.setter
    def discount(self, value):
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"discount must be in [0, 1], got {value}")
        self._discount = value

    def state_count(self):
        return len(self.states)

    def __len__(self):
        return len(self.states)

    def create_state(self, state):
        if state < 0:
            raise InvalidDistribution(f"negative state index {state}")
        while len(self.states) <= state:
            self.states.append(State())
        return self.states[state]

    def get_action(self, state, action):
        if action < 0:
            raise InvalidDistribution(f"negative action index {action}")
        return self.create_state(state).get_action(action)

    def add_transition(self, fromid, actionid, toid, probability, reward):
        self.create_state(toid)
        action = self.get_action(fromid, actionid)
        if action.is_outcome_action():
            raise ConfigurationError(f"action {actionid} of state {fromid} has outcomes")
        action.transition.add_sample(toid, probability, reward)

    def add_outcome_transition(self, fromid, actionid, outcomeid, toid, probability, reward):
        if outcomeid < 0:
            raise InvalidDistribution(f"negative outcome index {outcomeid}")
        self.create_state(toid)
        self.get_action(fromid, actionid).add_outcome(outcomeid).add_sample(toid, probability, reward)

    def set_budget(self, state, action, budget):
        self.states[state].actions[action].budget = check_budget(budget)

    def set_state_budget(self, state, budget):
        self.states[state].budget = check_budget(budget)

    def set_uniform_budgets(self, budget):
        """Set the same budget on every state-action and every state."""
        budget = check_budget(budget)
        for state in self.states:
            state.budget = budget
            for action in state.actions:
                action.budget = budget

    def set_weights(self, state, action, weights):
        self.states[state].actions[action].weights = check_weights(weights)

    def set_outcome_distribution(self, state, action, distribution):
        action = self.states[state].actions[action]
        if not action.is_outcome_action():
            raise ConfigurationError("only outcome actions have an outcome distribution")
        action.distribution = np.asarray(distribution, dtype=np.float64)

    def set_uniform_distributions(self):
        """Set a uniform nominal distribution on every outcome action."""
        for state in self.states:
            for action in state.actions:
                if action.is_outcome_action():
                    n = len(action.outcomes)
                    action.distribution = np.full(n, 1.0 / n)

    def transition_count(self):
        count = 0
        for state in self.states:
            for action in state.actions:
                if action.is_outcome_action():
                    count += sum(len(t) for t in action.outcomes)
                else:
                    count += len(action.transition)
        return count

    def validate(self, transitions='normalize'):
        """
        Check the model before solving. Partial transitions are normalized
        in place when transitions == 'normalize' and rejected when it is
        'reject'.
        """
        if transitions not in ('normalize', 'reject'):
            raise ConfigurationError(f"unknown transitions option {transitions!r}")
        normalize = transitions == 'normalize'
        for s, state in enumerate(self.states):
            for a, action in enumerate(state.actions):
                if not action.is_valid():
                    raise InvalidDistribution(f"state {s} action {a} has no transitions")
                try:
                    action.validate(normalize)
                except InvalidDistribution as exc:
                    raise InvalidDistribution(f"state {s} action {a}: {exc}") from exc

    @classmethod
    def from_records(cls, records, discount=1.0):
        """
        Build a model from (state, action, next_state, probability, reward)
        records. A sixth element, when present, is the outcome index.
        """
        rmdp = cls(discount)
        for record in records:
            if len(record) == 5:
                rmdp.add_transition(*record)
            elif len(record) == 6:
                s, a, s_next, p, r, o = record
                rmdp.add_outcome_transition(s, a, o, s_next, p, r)
            else:
                raise InvalidDistribution(f"record must have 5 or 6 fields, got {len(record)}")
        log.debug('Built RMDP with %d states and %d transitions', rmdp.state_count(), rmdp.transition_count())
        return rmdp

    @classmethod
    def from_mdp(cls, mdp):
        """
        Convert an rmdp.MDP.MDP implementation. The state and action labels
        are kept in state_labels and action_labels.
        """
        states = list(mdp.states())
        if not states:
            raise InvalidDistribution("MDP has no states")
        state_ids = {s: i for i, s in enumerate(states)}
        rmdp = cls(mdp.discount)
        rmdp.create_state(len(states) - 1)
        rmdp.state_labels = states
        rmdp.action_labels = []
        for s in states:
            sid = state_ids[s]
            actions = [] if mdp.is_terminal(s) else list(mdp.actions(s))
            rmdp.action_labels.append(actions)
            for aid, a in enumerate(actions):
                for p, s_next, r in mdp.transitions(s, a):
                    if s_next not in state_ids:
                        raise InvalidDistribution(f"transition to unknown state {s_next!r}")
                    rmdp.add_transition(sid, aid, state_ids[s_next], p, r)
                rmdp.set_budget(sid, aid, mdp.budget(s, a))
        return rmdp
