class MDP:
    """
    Callback description of a finite MDP for RMDP.from_mdp.

    States and actions can be any hashable labels; from_mdp numbers them
    in the order they are yielded and keeps the labels on the RMDP.
    """

    @property
    def discount(self):
        return 1.0

    def states(self):
        """Iterable of state labels."""
        raise NotImplementedError

    def actions(self, state):
        """Iterable of the action labels available in state."""
        raise NotImplementedError

    def transitions(self, state, action):
        """
        List of (probability, next_state, reward) for taking action in
        state. next_state must be one of the labels from states().
        """
        raise NotImplementedError

    def is_terminal(self, state):
        # terminal states get no actions and keep value 0
        return False

    def budget(self, state, action):
        """Ambiguity budget of (state, action); 0 leaves nature no room."""
        return 0.0
