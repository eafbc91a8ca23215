# foehnmix/iwls.py
import warnings
from typing import Optional, Tuple

import numpy as np
from scipy.linalg import cho_factor, cho_solve
from scipy.special import expit

from .bic import calculate_information_criteria
from .errors import InvalidInputError, RankDeficiencyError
from .model_interface import IWLSResult
from .transforms import EPSILON, clip_probability


def binomial_loglik(y: np.ndarray, prob: np.ndarray) -> float:
    """Log-likelihood of (soft) binary responses y under probabilities prob."""
    prob = clip_probability(prob)
    return float(np.sum(y * np.log(prob) + (1 - y) * np.log(1 - prob)))


# --- Design matrix scaling ---


def standardization_map(X: np.ndarray, standardize: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """
    Standardizes the non-constant columns of a design matrix.

    Columns are centered only if the design contains an intercept (a
    constant, non-zero column); otherwise they are scaled only.

    Args:
        X: Design matrix (N x K).
        standardize: If False, X is returned unchanged with an identity map.

    Returns:
        Tuple (Xs, T): the standardized design and the K x K matrix mapping
        coefficients on the standardized scale to the original scale
        (alpha = T @ beta).
    """
    nparams = X.shape[1]
    if not standardize:
        return X, np.eye(nparams)

    constant = np.all(X == X[0], axis=0)
    intercept = np.flatnonzero(constant & (X[0] != 0))
    center = np.where(constant, 0.0, X.mean(axis=0))
    if intercept.size == 0:
        center = np.zeros(nparams)
    scale = np.where(constant, 1.0, X.std(axis=0, ddof=1))

    Xs = (X - center) / scale
    T = np.diag(1.0 / scale)
    if intercept.size > 0:
        i0 = intercept[0]
        T[i0, :] -= center / scale / X[0, i0]
        T[i0, i0] = 1.0
    return Xs, T


def _cross_product_inverse(Xs: np.ndarray, w: np.ndarray) -> Tuple[tuple, np.ndarray]:
    """Cholesky factor of X'WX and X'W; raises on (near) singularity."""
    XtW = Xs.T * w
    A = XtW @ Xs
    with np.errstate(divide="ignore"):
        rcond = 1.0 / np.linalg.cond(A)
    if not np.isfinite(rcond) or rcond < np.finfo(float).eps:
        raise RankDeficiencyError(
            f"X'WX is singular (reciprocal condition number {rcond:.3g}); "
            f"covariates are collinear or perfectly separate the response."
        )
    try:
        factor = cho_factor(A, lower=True, check_finite=False)
    except np.linalg.LinAlgError as err:
        raise RankDeficiencyError(f"Cholesky decomposition of X'WX failed: {err}") from err
    return factor, XtW


# --- Main IWLS Function ---


def iwls_logit(X: np.ndarray,
               y: np.ndarray,
               alpha: Optional[np.ndarray] = None,
               standardize: bool = True,
               maxit: int = 100,
               tol: float = 1e-8,
               verbose: bool = False) -> IWLSResult:
    """
    Logistic regression of soft responses by Iteratively Reweighted Least Squares.

    Fits logit(pi_i) = x_i' alpha where the response y_i is a probability in
    [0, 1] (typically the EM posterior), not a 0/1 count.

    Args:
        X: Design matrix (N x K), usually with a constant first column.
        y: Responses in [0, 1], length N.
        alpha: Optional starting coefficients (original scale). Zeros if None.
        standardize: Standardize non-constant covariates before solving.
        maxit: Maximum number of IWLS iterations.
        tol: Convergence tolerance on the change of the log-likelihood or,
             alternatively, the largest coefficient change.
        verbose: Print the log-likelihood path.

    Returns:
        IWLSResult. `converged` is False (and a RuntimeWarning issued) if
        `maxit` was reached.

    Raises:
        InvalidInputError: on malformed X or y.
        RankDeficiencyError: if X'WX is (near) singular.
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    if X.ndim != 2 or y.ndim != 1 or X.shape[0] != y.size:
        raise InvalidInputError(
            f"Shape mismatch: X has shape {X.shape}, y has shape {y.shape}."
        )
    if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
        raise InvalidInputError("X and y must not contain missing or non-finite values.")
    if np.any(y < 0) or np.any(y > 1):
        raise InvalidInputError("Responses must lie within [0, 1].")
    nobs, nparams = X.shape
    if nobs <= nparams:
        raise InvalidInputError(f"Need more observations ({nobs}) than coefficients ({nparams}).")

    Xs, T = standardization_map(X, standardize)
    if np.linalg.matrix_rank(Xs) < nparams:
        raise RankDeficiencyError(f"Design matrix has rank {np.linalg.matrix_rank(Xs)} < {nparams} columns.")

    beta = np.zeros(nparams) if alpha is None else np.linalg.solve(T, np.asarray(alpha, dtype=float))
    eta = Xs @ beta
    prob = expit(eta)
    loglik = binomial_loglik(y, prob)

    converged = False
    iteration = 0
    for iteration in range(1, maxit + 1):
        w = np.maximum(prob * (1 - prob), EPSILON)
        z = eta + (y - prob) / w
        factor, XtW = _cross_product_inverse(Xs, w)
        beta_new = cho_solve(factor, XtW @ z, check_finite=False)

        eta = Xs @ beta_new
        prob = expit(eta)
        loglik_new = binomial_loglik(y, prob)
        if not np.isfinite(loglik_new) or not np.all(np.isfinite(beta_new)):
            raise RankDeficiencyError(f"IWLS produced non-finite coefficients at iteration {iteration}.")

        delta_ll = abs(loglik_new - loglik)
        delta_beta = np.max(np.abs(beta_new - beta))
        beta, loglik = beta_new, loglik_new
        if verbose:
            print(f"  IWLS iteration {iteration}: log-likelihood {loglik:.6f}, max coef change {delta_beta:.3g}")
        if delta_ll < tol or delta_beta < tol:
            converged = True
            break

    if not converged:
        warnings.warn(f"IWLS did not converge after {maxit} iterations.", RuntimeWarning)

    # Covariance of the coefficients from the final weights
    w = np.maximum(prob * (1 - prob), EPSILON)
    factor, _ = _cross_product_inverse(Xs, w)
    cov_beta = cho_solve(factor, np.eye(nparams), check_finite=False)
    cov_alpha = T @ cov_beta @ T.T

    aic, bic = calculate_information_criteria(loglik, nobs, nparams)
    return IWLSResult(
        alpha=T @ beta,
        beta=beta,
        prob=clip_probability(prob),
        loglik=loglik,
        edf=nparams,
        aic=aic,
        bic=bic,
        std_error=np.sqrt(np.diag(cov_alpha)),
        iterations=iteration,
        converged=converged,
    )
