from enum import Enum
from typing import Protocol, List, Tuple, Callable, NamedTuple, Optional, Union
import numpy as np
from scipy.optimize import OptimizeResult

# --- Data Structures ---


class Theta(NamedTuple):
    """Distributional parameters of the two mixture components."""

    mu1: float  # Location, component 1
    logsd1: float  # Log-scale, component 1
    mu2: float  # Location, component 2
    logsd2: float  # Log-scale, component 2

    @property
    def sigma1(self) -> float:
        return float(np.exp(self.logsd1))

    @property
    def sigma2(self) -> float:
        return float(np.exp(self.logsd2))

    def as_array(self) -> np.ndarray:
        return np.array([self.mu1, self.logsd1, self.mu2, self.logsd2], dtype=float)

    @classmethod
    def from_array(cls, values) -> "Theta":
        values = np.asarray(values, dtype=float)
        return cls(float(values[0]), float(values[1]), float(values[2]), float(values[3]))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.as_array())))


class LogLikelihood(NamedTuple):
    """Decomposition of the mixture log-likelihood."""

    component: float  # Posterior-weighted sum of per-component log-densities
    concomitant: float  # Weighted binary cross-entropy of posterior vs. mixing probability
    full: float  # component + concomitant


class IterationRecord(NamedTuple):
    """Snapshot of one EM iteration, appended to the fit history."""

    iteration: int
    theta: Theta
    alpha: Optional[np.ndarray]  # Concomitant coefficients (None without concomitants)
    mean_prob: float  # Mean mixing probability
    loglik: LogLikelihood


class IWLSResult(NamedTuple):
    """Holds the result of a logistic IWLS fit on (soft) responses."""

    alpha: np.ndarray  # Coefficients on the scale of the original design matrix
    beta: np.ndarray  # Coefficients on the standardized scale (== alpha if not standardized)
    prob: np.ndarray  # Fitted probabilities, clipped into (0, 1)
    loglik: float  # Binomial log-likelihood of the soft responses
    edf: int  # Effective degrees of freedom (number of coefficients)
    aic: float
    bic: float
    std_error: np.ndarray  # Standard errors of alpha
    iterations: int
    converged: bool


class FitState(Enum):
    """States of the EM driver."""

    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    FAILED = "failed"


class FitResult(NamedTuple):
    """Holds the final results of the EM fitting procedure."""

    theta: Theta  # Final component parameters
    alpha: Optional[np.ndarray]  # Concomitant coefficients (None without concomitants)
    posterior: np.ndarray  # Component-2 membership probabilities, one per observation
    mixing_prob: Union[float, np.ndarray]  # Scalar prior or per-observation probabilities
    loglik: LogLikelihood  # Log-likelihood decomposition at the returned iterate
    iterations: int  # Iteration index of the returned iterate
    converged: bool  # Did the algorithm converge?
    state: FitState  # CONVERGED or MAX_ITER_REACHED
    reason: str  # Human readable termination reason
    history: List[IterationRecord]  # One record per completed EM iteration
    family: str  # Name of the family used
    nobs: int  # Number of observations
    edf: int  # Effective degrees of freedom
    aic: float
    bic: float
    iwls: Optional[IWLSResult]  # Final concomitant fit (None without concomitants)
    execution_time: float  # Seconds


# --- Interface Definitions ---


class FamilyProtocol(Protocol):
    """Defines the interface required for any family used with the EM driver."""

    name: str
    left: float
    right: float

    @property
    def bounds(self) -> Tuple[float, float]:
        ...

    def density(self, y, mu: float, sigma: float, log: bool = False) -> np.ndarray:
        """Density of one component (scalar mu/sigma)."""
        ...

    def distribution(self, q, mu: float, sigma: float,
                     lower_tail: bool = True, log_p: bool = False) -> np.ndarray:
        """Distribution function of one component (scalar mu/sigma)."""
        ...

    def sample(self, n, mu, sigma, random_state=None) -> np.ndarray:
        """Random draws from the two-component mixture (length-2 mu/sigma)."""
        ...

    def log_likelihood(self, y: np.ndarray, posterior: np.ndarray,
                       mixing_prob, theta: Theta) -> LogLikelihood:
        ...

    def posterior_update(self, y: np.ndarray, mixing_prob, theta: Theta) -> np.ndarray:
        ...

    def theta_update(self, y: np.ndarray, posterior: np.ndarray, init: bool = False,
                     theta: Optional[Theta] = None) -> Theta:
        ...


class OptimizerProtocol(Protocol):
    """Unconstrained minimizer used by the censored/truncated theta update."""

    def minimize(self, fun: Callable[[np.ndarray], float], x0: np.ndarray) -> OptimizeResult:
        """
        Minimizes `fun` starting from `x0`.

        Must raise an OptimizerConvergenceError rather than return a
        non-converged or non-finite solution.
        """
        ...
