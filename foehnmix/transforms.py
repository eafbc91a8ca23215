import numpy as np

from .model_interface import Theta

EPSILON = np.sqrt(np.finfo(float).eps)  # Keeps probabilities away from {0, 1}
LOGSD_FLOOR = -6.0  # Scale parameters below exp(-6) are floored
MIN_GAP = 1e-8  # Smallest location gap representable by the ordered reparameterization

# --- Individual Transformations ---


def clip_probability(p, eps: float = EPSILON) -> np.ndarray:
    """Clips probabilities into [eps, 1 - eps] to prevent log(0)."""
    return np.clip(np.asarray(p, dtype=float), eps, 1.0 - eps)


def transform_sigma(sigma: float) -> float:
    """Log transform for scale parameters, floored at LOGSD_FLOOR."""
    if not sigma >= np.exp(LOGSD_FLOOR):
        return LOGSD_FLOOR
    return float(np.log(sigma))


# --- Ordered reparameterization used by the numerical theta update ---


def location_direction(theta: Theta) -> float:
    """+1 if component 2 lies at or above component 1, -1 otherwise."""
    return 1.0 if theta.mu2 >= theta.mu1 else -1.0


def theta_to_optim(theta: Theta) -> np.ndarray:
    """
    Maps Theta to the unconstrained vector (mu1, logsd1, gap, logsd2).

    The inverse mapping sets mu2 = mu1 + direction * exp(gap), so the
    ordering of the two locations can never flip during optimization.

    Args:
        theta: Component parameters.

    Returns:
        Numpy array of length 4.
    """
    gap = np.log(max(abs(theta.mu2 - theta.mu1), MIN_GAP))
    return np.array([theta.mu1, theta.logsd1, gap, theta.logsd2], dtype=float)


def optim_to_theta(par: np.ndarray, direction: float = 1.0) -> Theta:
    """Inverse of theta_to_optim."""
    return Theta(mu1=float(par[0]), logsd1=float(par[1]),
                 mu2=float(par[0] + direction * np.exp(par[2])), logsd2=float(par[3]))
