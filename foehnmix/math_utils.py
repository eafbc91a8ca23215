import numpy as np
from scipy.special import logsumexp
from typing import Tuple

from .errors import ComponentDegeneracyError


def log_diff_exp(log_a: np.ndarray, log_b: np.ndarray) -> np.ndarray:
    """
    Computes log(exp(log_a) - exp(log_b)) without leaving log space.

    Requires log_a >= log_b elementwise. Numerically stable when both values
    are large in magnitude and close to each other (e.g. two tail
    probabilities near 0), where subtracting on the natural scale would
    cancel to 0 or produce -inf.

    Args:
        log_a: Log of the larger quantity.
        log_b: Log of the smaller quantity. May be -inf.

    Returns:
        Array of log-differences; -inf where the two inputs are equal.
    """
    log_a, log_b = np.broadcast_arrays(np.asarray(log_a, dtype=float),
                                       np.asarray(log_b, dtype=float))
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        # log1p(-exp(d)) loses precision for d close to 0, expm1 is exact there
        d = log_b - log_a
        out = np.where(d > -np.log(2.0),
                       log_a + np.log(-np.expm1(d)),
                       log_a + np.log1p(-np.exp(d)))
    out = np.where(np.isneginf(log_b), log_a, out)
    out = np.where(log_a == log_b, -np.inf, out)
    return out


def log_add_exp(log_a: np.ndarray, log_b: np.ndarray) -> np.ndarray:
    """Computes log(exp(log_a) + exp(log_b)) elementwise (stable log-sum)."""
    stacked = np.stack(np.broadcast_arrays(np.asarray(log_a, dtype=float),
                                           np.asarray(log_b, dtype=float)))
    with np.errstate(divide="ignore", invalid="ignore"):
        return logsumexp(stacked, axis=0)


def weighted_moments(y: np.ndarray, weights: np.ndarray, component: int) -> Tuple[float, float]:
    """
    Weighted mean and (population) standard deviation of y.

    Args:
        y: Observations.
        weights: Non-negative weights, same length as y.
        component: Component index (1 or 2), used in the error message only.

    Returns:
        Tuple (mean, standard deviation).

    Raises:
        ComponentDegeneracyError: if the weights sum to zero.
    """
    total = np.sum(weights)
    if not np.isfinite(total) or total <= 0:
        raise ComponentDegeneracyError(
            f"Component {component} received zero total posterior weight; "
            f"cannot compute its moments."
        )
    mu = np.sum(weights * y) / total
    sd = np.sqrt(np.sum(weights * (y - mu) ** 2) / total)
    return float(mu), float(sd)
