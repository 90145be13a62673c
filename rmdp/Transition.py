import numpy as np

from rmdp.definitions import EPSILON
from rmdp.errors import InvalidDistribution


class Transition:
    """
    Sparse distribution over next states with a reward per next state.

    Next states are kept in insertion order. Adding the same next state
    twice accumulates the probability and keeps the probability-weighted
    average of the rewards.
    """

    def __init__(self, indices=None, probabilities=None, rewards=None):
        self._indices = []
        self._probabilities = []
        self._rewards = []
        self._position = {}
        self._arrays = None

        if indices is None:
            return
        if probabilities is None or len(indices) != len(probabilities):
            raise InvalidDistribution("indices and probabilities must have the same length")
        if rewards is None:
            rewards = [0.0] * len(indices)
        if len(rewards) != len(indices):
            raise InvalidDistribution("indices and rewards must have the same length")
        for stateto, p, r in zip(indices, probabilities, rewards):
            self.add_sample(stateto, p, r)

    def add_sample(self, stateto, probability, reward):
        stateto = int(stateto)
        probability = float(probability)
        reward = float(reward)
        if stateto < 0:
            raise InvalidDistribution(f"negative next state index {stateto}")
        if not np.isfinite(probability) or probability < 0:
            raise InvalidDistribution(f"invalid probability {probability} for next state {stateto}")
        if not np.isfinite(reward):
            raise InvalidDistribution(f"invalid reward {reward} for next state {stateto}")

        self._arrays = None
        pos = self._position.get(stateto)
        if pos is None:
            self._position[stateto] = len(self._indices)
            self._indices.append(stateto)
            self._probabilities.append(probability)
            self._rewards.append(reward)
            return

        p_old = self._probabilities[pos]
        total = p_old + probability
        if total > 0:
            self._rewards[pos] = (p_old * self._rewards[pos] + probability * reward) / total
        else:
            self._rewards[pos] = reward
        self._probabilities[pos] = total

    def _compile(self):
        if self._arrays is None:
            self._arrays = (
                np.array(self._indices, dtype=np.int64),
                np.array(self._probabilities, dtype=np.float64),
                np.array(self._rewards, dtype=np.float64),
            )
            for a in self._arrays:
                a.setflags(write=False)
        return self._arrays

    @property
    def indices(self):
        return self._compile()[0]

    @property
    def probabilities(self):
        return self._compile()[1]

    @property
    def rewards(self):
        return self._compile()[2]

    def __len__(self):
        return len(self._indices)

    def __iter__(self):
        """Yields (next_state, probability, reward) in insertion order."""
        return iter(zip(self._indices, self._probabilities, self._rewards))

    def __repr__(self):
        return f"Transition({self._indices}, {self._probabilities}, {self._rewards})"

    def empty(self):
        return len(self._indices) == 0

    def sum_probabilities(self):
        return float(sum(self._probabilities))

    def is_normalized(self, tol=EPSILON):
        return abs(self.sum_probabilities() - 1.0) < tol

    def normalize(self):
        """Scale the probabilities to sum to one, in place."""
        total = self.sum_probabilities()
        if total <= 0:
            raise InvalidDistribution("cannot normalize a transition with zero total probability")
        self._probabilities = [p / total for p in self._probabilities]
        self._arrays = None

    def returns(self, values, discount):
        """Return r(s') + discount * values[s'] for each next state."""
        indices, _, rewards = self._compile()
        return rewards + discount * np.asarray(values)[indices]

    def value(self, values, discount, probabilities=None):
        """Expected return under this transition (or a replacement distribution)."""
        if probabilities is None:
            probabilities = self.probabilities
        return float(np.dot(probabilities, self.returns(values, discount)))

    def mean_reward(self):
        _, probabilities, rewards = self._compile()
        return float(np.dot(probabilities, rewards))
