import numpy as np

# Default solution precision
SOLPREC = 0.0001

# Tolerance used when checking probability distributions
EPSILON = 1e-6

# Default number of iterations
MAXITER = 100000


def is_probability_dist(p, tol=EPSILON):
    """
    Return True if p is non-empty, non-negative and sums to 1 within tol.
    """
    p = np.asarray(p, dtype=np.float64)
    if p.size == 0:
        return False
    if np.any(p < 0):
        return False
    return abs(float(p.sum()) - 1.0) < tol


def sort_indexes(v, descending=False):
    """Indices that sort v, stable so equal values keep their order."""
    v = np.asarray(v, dtype=np.float64)
    if descending:
        return np.argsort(-v, kind="stable")
    return np.argsort(v, kind="stable")
