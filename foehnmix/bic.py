# foehnmix/bic.py
import numpy as np
from typing import Tuple


def calculate_information_criteria(loglik: float, nobs: int, edf: int) -> Tuple[float, float]:
    """
    Calculates Akaike's and the Bayesian Information Criterion.

    Args:
        loglik: Maximized log-likelihood of the model.
        nobs: Number of observations the model was fitted on.
        edf: Effective degrees of freedom (number of estimated parameters).
             For a mixture fit this is 4 (Theta) plus the number of concomitant
             coefficients, or 4 + 1 with a constant mixing proportion.

    Returns:
        Tuple (aic, bic). Both are np.inf if inputs are invalid.
    """
    if not np.isfinite(loglik):
        print("Warning: Cannot calculate information criteria with non-finite log-likelihood.")
        return np.inf, np.inf
    if nobs <= 0:
        print("Warning: Cannot calculate information criteria with zero or negative number of observations.")
        return np.inf, np.inf
    if edf <= 0:
        print("Warning: Cannot calculate information criteria with zero effective degrees of freedom.")
        return np.inf, np.inf

    aic = -2 * loglik + 2 * edf
    bic = -2 * loglik + edf * np.log(nobs)
    return float(aic), float(bic)
