class RMDPError(Exception):
    """Base class for all errors raised by the solver."""


class InvalidDistribution(RMDPError, ValueError):
    """Malformed probability data: negative entries or a bad sum."""


class InvalidBudget(RMDPError, ValueError):
    """Ambiguity budget is negative or not a number."""


class InfeasibleAmbiguity(RMDPError, RuntimeError):
    """Nature's response has no feasible distribution within the budget."""


class OptimizationInfeasible(RMDPError, RuntimeError):
    """The s-rectangular linear program is infeasible or unbounded."""


class ConfigurationError(RMDPError, ValueError):
    """Unsupported option or model/algorithm combination."""
