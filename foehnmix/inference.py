# foehnmix/inference.py
import warnings
from typing import Tuple

import numdifftools as nd
import numpy as np

from .model_interface import FamilyProtocol, Theta


def weighted_component_nll(family: FamilyProtocol, y: np.ndarray, posterior: np.ndarray,
                           params: np.ndarray) -> float:
    """Negative posterior-weighted component log-likelihood at (mu1, logsd1, mu2, logsd2)."""
    theta = Theta.from_array(params)
    logd1 = family.density(y, theta.mu1, theta.sigma1, log=True)
    logd2 = family.density(y, theta.mu2, theta.sigma2, log=True)
    ll = np.sum((1 - posterior) * logd1 + posterior * logd2)
    if not np.isfinite(ll):
        return np.inf
    return -ll


def theta_standard_errors(family: FamilyProtocol,
                          y: np.ndarray,
                          posterior: np.ndarray,
                          theta: Theta,
                          step: float = 1e-4) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Standard errors of the component parameters from the observed information.

    The Hessian of the negative weighted component log-likelihood is computed
    numerically in (mu1, logsd1, mu2, logsd2) with numdifftools and inverted.

    Args:
        family: Family the parameters were estimated with.
        y: Observations.
        posterior: Component-2 membership probabilities (e.g. FitResult.posterior).
        theta: Parameter estimate (e.g. FitResult.theta).
        step: Finite difference step size.

    Returns:
        Tuple (hessian, cov, se). If the Hessian is non-finite or singular a
        warning is issued and cov/se are filled with NaN.
    """
    y = np.asarray(y, dtype=float)
    posterior = np.asarray(posterior, dtype=float)
    x0 = theta.as_array()

    hessian_calculator = nd.Hessian(lambda p: weighted_component_nll(family, y, posterior, p),
                                    step=step, method='central')
    hessian = np.asarray(hessian_calculator(x0), dtype=float)

    cov = np.full((x0.size, x0.size), np.nan)
    if not np.all(np.isfinite(hessian)):
        warnings.warn("Non-finite values in Hessian. Standard errors are not available.")
        return hessian, cov, np.full(x0.size, np.nan)
    try:
        cov = np.linalg.inv(hessian)
    except np.linalg.LinAlgError:
        warnings.warn("Hessian inversion failed. Standard errors are not available.")
        return hessian, cov, np.full(x0.size, np.nan)

    variances = np.diag(cov)
    if np.any(variances <= 0):
        warnings.warn("Hessian is not positive definite at theta; some standard errors are NaN.")
    with np.errstate(invalid="ignore"):
        se = np.sqrt(np.where(variances > 0, variances, np.nan))
    return hessian, cov, se
