"""
Families for two-component mixture models.

A family bundles everything the EM driver needs to know about the component
distributions: density and distribution functions of a single component,
random sampling from the mixture, the log-likelihood decomposition, the
posterior (E-step) and the parameter update (M-step).

Two base shapes are available, Gaussian and logistic, each in a plain,
censored and truncated variant. Censored and truncated families delegate
the interval arithmetic to :mod:`foehnmix.kernel`.
"""
import numpy as np
from dataclasses import dataclass, field
from scipy.stats import norm, logistic as logistic_dist
from typing import Any, NamedTuple, Optional, Tuple

from . import kernel
from .errors import InvalidInputError
from .math_utils import log_add_exp, weighted_moments
from .model_interface import LogLikelihood, OptimizerProtocol, Theta
from .optimizer import ScipyOptimizer
from .transforms import (clip_probability, transform_sigma, theta_to_optim, optim_to_theta,
                         location_direction)


class Shape(NamedTuple):
    """Base distribution shape of the mixture components."""

    name: str
    dist: Any  # scipy.stats continuous distribution with loc/scale
    scale_factor: float  # Converts a standard deviation into the native scale parameter


GAUSSIAN = Shape("Gaussian", norm, 1.0)
LOGISTIC = Shape("logistic", logistic_dist, np.sqrt(3.0) / np.pi)

SHAPES = {"gaussian": GAUSSIAN, "logistic": LOGISTIC}


# --- Argument checks ---


def _scalar_params(mu, sigma, what: str) -> Tuple[float, float]:
    if np.size(mu) != 1 or np.size(sigma) != 1:
        raise InvalidInputError(
            f"{what} function for one specific mu/sigma (have to be of length 1)"
        )
    return float(np.ravel(mu)[0]), float(np.ravel(sigma)[0])


def _pair_params(mu, sigma) -> Tuple[np.ndarray, np.ndarray]:
    mu, sigma = np.asarray(mu, dtype=float).ravel(), np.asarray(sigma, dtype=float).ravel()
    if mu.size != 2 or sigma.size != 2:
        raise InvalidInputError("mu and sigma have to be of length 2 (mu/sigma for the two components)")
    return mu, sigma


def _split_counts(n) -> Tuple[int, int]:
    if np.ndim(n) == 0:
        n = int(n)
        return n // 2, n - n // 2
    n = np.asarray(n).ravel()
    if n.size != 2:
        raise InvalidInputError("n has to be a single count or one count per component")
    return int(n[0]), int(n[1])


def _check_bounds(left, right) -> Tuple[float, float]:
    if np.size(left) != 1 or np.size(right) != 1:
        raise InvalidInputError("Input left/right have to be numeric values of length 1!")
    left, right = float(np.ravel(left)[0]), float(np.ravel(right)[0])
    if np.isnan(left) or np.isnan(right) or not left < right:
        raise InvalidInputError(f"Bounds must satisfy left < right, got left={left}, right={right}.")
    return left, right


# --- Shared mixture computations ---


def mixture_log_likelihood(family, y: np.ndarray, posterior: np.ndarray,
                           mixing_prob, theta: Theta) -> LogLikelihood:
    """
    Log-likelihood decomposition of a two-component mixture.

    Args:
        family: Family providing the single-component `density`.
        y: Observations.
        posterior: Component-2 membership probabilities.
        mixing_prob: Scalar or per-observation probability of component 2.
        theta: Component parameters.

    Returns:
        LogLikelihood(component, concomitant, full).
    """
    prob = clip_probability(mixing_prob)
    post = clip_probability(posterior)
    logd1 = family.density(y, theta.mu1, theta.sigma1, log=True)
    logd2 = family.density(y, theta.mu2, theta.sigma2, log=True)
    component = np.sum((1 - post) * logd1) + np.sum(post * logd2)
    concomitant = np.sum((1 - post) * np.log(1 - prob) + post * np.log(prob))
    return LogLikelihood(component=float(component), concomitant=float(concomitant),
                         full=float(component + concomitant))


def mixture_posterior(family, y: np.ndarray, mixing_prob, theta: Theta) -> np.ndarray:
    """
    A-posteriori probability of component 2.

    Ratio between the weighted density of component 2 and the sum of the
    weighted densities of both components, evaluated in log space.
    Observations where both densities vanish keep their prior probability.
    """
    prob = np.asarray(mixing_prob, dtype=float)
    with np.errstate(divide="ignore"):
        log_w1 = np.log1p(-prob) + family.density(y, theta.mu1, theta.sigma1, log=True)
        log_w2 = np.log(prob) + family.density(y, theta.mu2, theta.sigma2, log=True)
    log_total = log_add_exp(log_w1, log_w2)
    with np.errstate(invalid="ignore"):
        post = np.exp(log_w2 - log_total)
    post = np.where(np.isneginf(log_total), np.broadcast_to(prob, post.shape), post)
    return np.clip(post, 0.0, 1.0)


def moment_theta(y: np.ndarray, posterior: np.ndarray, init: bool, scale_factor: float) -> Theta:
    """
    Closed-form weighted moment estimates of the component parameters.

    Component 1 is weighted with 1 - posterior, component 2 with posterior.
    With `init` both components share the unweighted sample standard
    deviation. Scales below exp(-6) are floored.
    """
    mu1, sd1 = weighted_moments(y, 1.0 - posterior, component=1)
    mu2, sd2 = weighted_moments(y, posterior, component=2)
    if init:
        sd1 = sd2 = float(np.std(y, ddof=1)) if y.size > 1 else 0.0
    return Theta(mu1=mu1, logsd1=transform_sigma(sd1 * scale_factor),
                 mu2=mu2, logsd2=transform_sigma(sd2 * scale_factor))


def optimize_theta(family, y: np.ndarray, posterior: np.ndarray, init: bool,
                   theta: Optional[Theta]) -> Theta:
    """
    Numerical M-step for censored and truncated families.

    Maximizes the posterior-weighted censored/truncated log-likelihood over
    (mu1, logsd1, gap, logsd2) with mu2 = mu1 +/- exp(gap). The optimizer
    is seeded with `theta`, or with the (uncensored) weighted moments if
    no previous estimate is available.

    The sign is taken from the seed, not fixed to mu2 >= mu1: the ordering
    of the seed is kept throughout the search. With the default initial
    split the seed has mu2 >= mu1; a switched split (or a seed with
    mu2 < mu1) keeps component 2 below component 1.
    """
    y = np.asarray(y, dtype=float)
    posterior = np.asarray(posterior, dtype=float)
    w1, w2 = 1.0 - posterior, posterior
    if theta is None:
        theta = moment_theta(y, posterior, init, family.shape.scale_factor)
    else:
        # same zero-weight guard as the closed-form update
        weighted_moments(y, w1, component=1)
        weighted_moments(y, w2, component=2)
    direction = location_direction(theta)

    def negloglik(par: np.ndarray) -> float:
        current = optim_to_theta(par, direction)
        logd1 = family.density(y, current.mu1, current.sigma1, log=True)
        logd2 = family.density(y, current.mu2, current.sigma2, log=True)
        with np.errstate(invalid="ignore"):
            ll = np.sum(w1 * logd1 + w2 * logd2)
        if not np.isfinite(ll):
            return np.inf
        return -ll

    opt_result = family.optimizer.minimize(negloglik, theta_to_optim(theta))
    return optim_to_theta(opt_result.x, direction)


# --- Family variants ---


@dataclass(frozen=True)
class PlainFamily:
    """Two-component mixture of an uncensored, untruncated base shape."""

    shape: Shape
    left: float = field(default=-np.inf, init=False)
    right: float = field(default=np.inf, init=False)
    censored = False
    truncated = False

    @property
    def name(self) -> str:
        return self.shape.name

    @property
    def bounds(self) -> Tuple[float, float]:
        return self.left, self.right

    def density(self, y, mu, sigma, log: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "density")
        if log:
            return self.shape.dist.logpdf(y, loc=mu, scale=sigma)
        return self.shape.dist.pdf(y, loc=mu, scale=sigma)

    def distribution(self, q, mu, sigma, lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "distribution")
        dist = self.shape.dist(loc=mu, scale=sigma)
        if lower_tail:
            return dist.logcdf(q) if log_p else dist.cdf(q)
        return dist.logsf(q) if log_p else dist.sf(q)

    def sample(self, n, mu, sigma, random_state=None) -> np.ndarray:
        mu, sigma = _pair_params(mu, sigma)
        counts = _split_counts(n)
        rng = np.random.default_rng(random_state)
        return np.concatenate([
            self.shape.dist.rvs(loc=mu[k], scale=sigma[k], size=counts[k], random_state=rng)
            for k in range(2)
        ])

    def log_likelihood(self, y, posterior, mixing_prob, theta: Theta) -> LogLikelihood:
        return mixture_log_likelihood(self, y, posterior, mixing_prob, theta)

    def posterior_update(self, y, mixing_prob, theta: Theta) -> np.ndarray:
        return mixture_posterior(self, y, mixing_prob, theta)

    def theta_update(self, y, posterior, init: bool = False, theta: Optional[Theta] = None) -> Theta:
        # closed form, a previous estimate is not needed
        return moment_theta(np.asarray(y, dtype=float), np.asarray(posterior, dtype=float),
                            init, self.shape.scale_factor)


@dataclass(frozen=True)
class CensoredFamily:
    """Two-component mixture of a base shape censored at [left, right]."""

    shape: Shape
    left: float = -np.inf
    right: float = np.inf
    optimizer: OptimizerProtocol = field(default_factory=ScipyOptimizer, compare=False)
    censored = True
    truncated = False

    def __post_init__(self):
        left, right = _check_bounds(self.left, self.right)
        object.__setattr__(self, "left", left)
        object.__setattr__(self, "right", right)

    @property
    def name(self) -> str:
        return f"censored {self.shape.name}"

    @property
    def bounds(self) -> Tuple[float, float]:
        return self.left, self.right

    def density(self, y, mu, sigma, log: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "density")
        return kernel.dcensored(y, self.shape.dist(loc=mu, scale=sigma), self.left, self.right, log=log)

    def distribution(self, q, mu, sigma, lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "distribution")
        return kernel.pcensored(q, self.shape.dist(loc=mu, scale=sigma), self.left, self.right,
                                lower_tail=lower_tail, log_p=log_p)

    def sample(self, n, mu, sigma, random_state=None) -> np.ndarray:
        mu, sigma = _pair_params(mu, sigma)
        counts = _split_counts(n)
        rng = np.random.default_rng(random_state)
        return np.concatenate([
            kernel.rcensored(counts[k], self.shape.dist(loc=mu[k], scale=sigma[k]), self.left, self.right, rng)
            for k in range(2)
        ])

    def log_likelihood(self, y, posterior, mixing_prob, theta: Theta) -> LogLikelihood:
        return mixture_log_likelihood(self, y, posterior, mixing_prob, theta)

    def posterior_update(self, y, mixing_prob, theta: Theta) -> np.ndarray:
        return mixture_posterior(self, y, mixing_prob, theta)

    def theta_update(self, y, posterior, init: bool = False, theta: Optional[Theta] = None) -> Theta:
        return optimize_theta(self, y, posterior, init, theta)


@dataclass(frozen=True)
class TruncatedFamily:
    """Two-component mixture of a base shape truncated to [left, right]."""

    shape: Shape
    left: float = -np.inf
    right: float = np.inf
    optimizer: OptimizerProtocol = field(default_factory=ScipyOptimizer, compare=False)
    censored = False
    truncated = True

    def __post_init__(self):
        left, right = _check_bounds(self.left, self.right)
        object.__setattr__(self, "left", left)
        object.__setattr__(self, "right", right)

    @property
    def name(self) -> str:
        return f"truncated {self.shape.name}"

    @property
    def bounds(self) -> Tuple[float, float]:
        return self.left, self.right

    def density(self, y, mu, sigma, log: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "density")
        return kernel.dtruncated(y, self.shape.dist(loc=mu, scale=sigma), self.left, self.right, log=log)

    def distribution(self, q, mu, sigma, lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
        mu, sigma = _scalar_params(mu, sigma, "distribution")
        return kernel.ptruncated(q, self.shape.dist(loc=mu, scale=sigma), self.left, self.right,
                                 lower_tail=lower_tail, log_p=log_p)

    def sample(self, n, mu, sigma, random_state=None) -> np.ndarray:
        mu, sigma = _pair_params(mu, sigma)
        counts = _split_counts(n)
        rng = np.random.default_rng(random_state)
        return np.concatenate([
            kernel.rtruncated(counts[k], self.shape.dist(loc=mu[k], scale=sigma[k]), self.left, self.right, rng)
            for k in range(2)
        ])

    def log_likelihood(self, y, posterior, mixing_prob, theta: Theta) -> LogLikelihood:
        return mixture_log_likelihood(self, y, posterior, mixing_prob, theta)

    def posterior_update(self, y, mixing_prob, theta: Theta) -> np.ndarray:
        return mixture_posterior(self, y, mixing_prob, theta)

    def theta_update(self, y, posterior, init: bool = False, theta: Optional[Theta] = None) -> Theta:
        return optimize_theta(self, y, posterior, init, theta)


# --- Constructors ---


def gaussian() -> PlainFamily:
    return PlainFamily(GAUSSIAN)


def logistic() -> PlainFamily:
    return PlainFamily(LOGISTIC)


def censored_gaussian(left: float = -np.inf, right: float = np.inf, **kwargs) -> CensoredFamily:
    return CensoredFamily(GAUSSIAN, left, right, **kwargs)


def censored_logistic(left: float = -np.inf, right: float = np.inf, **kwargs) -> CensoredFamily:
    return CensoredFamily(LOGISTIC, left, right, **kwargs)


def truncated_gaussian(left: float = -np.inf, right: float = np.inf, **kwargs) -> TruncatedFamily:
    return TruncatedFamily(GAUSSIAN, left, right, **kwargs)


def truncated_logistic(left: float = -np.inf, right: float = np.inf, **kwargs) -> TruncatedFamily:
    return TruncatedFamily(LOGISTIC, left, right, **kwargs)


def get_family(name: str = "gaussian", left: float = -np.inf, right: float = np.inf,
               truncated: bool = False, optimizer: Optional[OptimizerProtocol] = None):
    """
    Selects a family by base shape and bounds.

    A plain family is returned if both bounds are infinite. With at least one
    finite bound the family is censored, or truncated if `truncated=True`.

    Args:
        name: 'gaussian' or 'logistic' (case-insensitive).
        left: Left censoring/truncation point.
        right: Right censoring/truncation point.
        truncated: Truncate instead of censor.
        optimizer: Optimizer for the numerical theta update of censored and
                   truncated families. Defaults to ScipyOptimizer().

    Returns:
        PlainFamily, CensoredFamily or TruncatedFamily.
    """
    key = str(name).lower()
    if key not in SHAPES:
        raise InvalidInputError(f"Unknown family '{name}'. Please choose one of {sorted(SHAPES)}.")
    shape = SHAPES[key]
    left, right = _check_bounds(left, right)
    if not (np.isfinite(left) or np.isfinite(right)):
        return PlainFamily(shape)
    kwargs = {} if optimizer is None else {"optimizer": optimizer}
    if truncated:
        return TruncatedFamily(shape, left, right, **kwargs)
    return CensoredFamily(shape, left, right, **kwargs)


def has_left(family) -> bool:
    """True if the family has a finite left censoring/truncation point."""
    return bool(np.isfinite(family.left))


def has_right(family) -> bool:
    """True if the family has a finite right censoring/truncation point."""
    return bool(np.isfinite(family.right))
