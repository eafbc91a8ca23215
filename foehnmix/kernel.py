"""
Censored and truncated versions of a continuous base distribution.

All functions take a frozen ``scipy.stats`` distribution (e.g.
``norm(loc=mu, scale=sigma)``) and a ``[left, right]`` interval. Infinite
bounds reduce every function to the plain base distribution.

Censoring: values beyond a bound are recorded at the bound, i.e. the
distribution has point masses F(left) at ``left`` and S(right) at ``right``.
Truncation: values beyond a bound are never observed; the density is
renormalized by the probability mass inside ``[left, right]``.
"""
import numpy as np

from .errors import NumericalDegeneracyError
from .math_utils import log_diff_exp


def _upper_tail(dist, x) -> np.ndarray:
    # Above the median, survival-function values keep full precision where
    # the CDF rounds to 1.
    return np.asarray(x) > dist.median()


def log_interval_mass(dist, left, right) -> np.ndarray:
    """
    Log-probability that the base distribution falls into [left, right].

    Args:
        dist: Frozen scipy.stats continuous distribution.
        left: Lower bound(s), may be -inf.
        right: Upper bound(s), may be +inf. Must satisfy left <= right.

    Returns:
        Array of log-probabilities.
    """
    with np.errstate(divide="ignore"):
        lower_form = log_diff_exp(dist.logcdf(right), dist.logcdf(left))
        upper_form = log_diff_exp(dist.logsf(left), dist.logsf(right))
    return np.where(_upper_tail(dist, left), upper_form, lower_form)


# --- Truncated distribution ---


def dtruncated(y, dist, left: float, right: float, log: bool = False) -> np.ndarray:
    """Density of the base distribution truncated to [left, right] (0 outside)."""
    y = np.asarray(y, dtype=float)
    inside = (y >= left) & (y <= right)
    with np.errstate(divide="ignore"):
        logd = np.where(inside, dist.logpdf(y) - log_interval_mass(dist, left, right), -np.inf)
    return logd if log else np.exp(logd)


def ptruncated(q, dist, left: float, right: float,
               lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
    """Distribution function of the base distribution truncated to [left, right]."""
    q = np.clip(np.asarray(q, dtype=float), left, right)
    log_mass = log_interval_mass(dist, left, right)
    if lower_tail:
        logp = log_interval_mass(dist, left, q) - log_mass
    else:
        logp = log_interval_mass(dist, q, right) - log_mass
    logp = np.minimum(logp, 0.0)
    return logp if log_p else np.exp(logp)


def rtruncated(n: int, dist, left: float, right: float, rng: np.random.Generator) -> np.ndarray:
    """
    Inverse-CDF sampling from the base distribution truncated to [left, right].

    Raises:
        NumericalDegeneracyError: if the interval lies so far in a tail that
            its probability underflows and no finite draw can be produced.
    """
    u = rng.uniform(size=int(n))
    if _upper_tail(dist, left):
        s_left, s_right = dist.sf(left), dist.sf(right)
        mass = s_left - s_right
        draws = dist.isf(s_left - u * mass)
    else:
        p_left, p_right = dist.cdf(left), dist.cdf(right)
        mass = p_right - p_left
        draws = dist.ppf(p_left + u * mass)
    if not mass > 0 or not np.all(np.isfinite(draws)):
        raise NumericalDegeneracyError(
            f"Cannot sample from the truncation interval [{left}, {right}]: "
            f"its probability underflows (log-mass {float(log_interval_mass(dist, left, right)):.1f})."
        )
    return np.clip(draws, left, right)


# --- Censored distribution ---


def dcensored(y, dist, left: float, right: float, log: bool = False) -> np.ndarray:
    """
    Density of the base distribution censored at [left, right].

    Strictly inside the interval this is the base density. Observations at
    or below ``left`` carry the point mass F(left), observations at or above
    ``right`` the point mass S(right).
    """
    y = np.asarray(y, dtype=float)
    with np.errstate(divide="ignore"):
        logd = dist.logpdf(y)
        logd = np.where(y <= left, dist.logcdf(left), logd)
        logd = np.where(y >= right, dist.logsf(right), logd)
    return logd if log else np.exp(logd)


def pcensored(q, dist, left: float, right: float,
              lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
    """
    Distribution function of the base distribution censored at [left, right].

    P(Y <= q) is 0 below ``left``, F(q) on [left, right) and 1 from ``right``
    on. The upper tail is its complement P(Y > q).
    """
    q = np.asarray(q, dtype=float)
    with np.errstate(divide="ignore"):
        if lower_tail:
            logp = np.where(q < left, -np.inf, np.where(q >= right, 0.0, dist.logcdf(q)))
        else:
            logp = np.where(q < left, 0.0, np.where(q >= right, -np.inf, dist.logsf(q)))
    return logp if log_p else np.exp(logp)


def rcensored(n: int, dist, left: float, right: float, rng: np.random.Generator) -> np.ndarray:
    """Draws from the base distribution, clipped into [left, right]."""
    return np.clip(dist.rvs(size=int(n), random_state=rng), left, right)
