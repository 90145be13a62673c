from rmdp.MDP import MDP


class RiverSwimMDP(MDP):
    """
    RiverSwim: a chain of river segments. Swimming left always succeeds and
    pays a small reward at the left bank; swimming right fights the current
    and pays a large reward at the right bank.
    """

    def __init__(self, length=6, discount=0.95, budget=0.0):
        self.length = int(length)
        self._discount = float(discount)
        self._budget = float(budget)

    @property
    def discount(self):
        return self._discount

    def states(self):
        return range(self.length)

    def actions(self, state):
        return ['left', 'right']

    def transitions(self, state, action):
        last = self.length - 1
        if action == 'left':
            reward = 0.005 if state == 0 else 0.0
            return [(1.0, max(state - 1, 0), reward)]
        if state == 0:
            return [(0.4, 0, 0.0), (0.6, 1, 0.0)]
        if state == last:
            return [(0.4, last - 1, 0.0), (0.6, last, 1.0)]
        return [(0.1, state - 1, 0.0), (0.6, state, 0.0), (0.3, state + 1, 0.0)]

    def budget(self, state, action):
        return self._budget
