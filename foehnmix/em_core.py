# foehnmix/em_core.py
import time
import warnings
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm.auto import tqdm

from .bic import calculate_information_criteria
from .control import EMControl
from .errors import EMFitError, InvalidInputError, NumericalDegeneracyError
from .families import get_family, gaussian
from .iwls import iwls_logit
from .model_interface import (FamilyProtocol, FitResult, FitState, IterationRecord, IWLSResult,
                              LogLikelihood, Theta)
from .transforms import clip_probability

# Number of distributional parameters (mu1, logsd1, mu2, logsd2)
N_THETA = 4

# Failures of a numerical sub-step; everything else propagates unchanged
_NUMERICAL_ERRORS = (NumericalDegeneracyError, np.linalg.LinAlgError, FloatingPointError)


class _Iterate(NamedTuple):
    """Complete parameter state after one EM iteration."""

    iteration: int
    theta: Theta
    alpha: Optional[np.ndarray]
    mixing_prob: Union[float, np.ndarray]
    posterior: np.ndarray
    loglik: Optional[LogLikelihood]
    iwls: Optional[IWLSResult]


# --- Input handling ---


def _resolve_family(family, control: EMControl) -> FamilyProtocol:
    if family is None:
        return gaussian()
    if isinstance(family, str):
        return get_family(family, optimizer=control.optimizer)
    return family


def _validate_inputs(y, X, family: FamilyProtocol) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    y = np.asarray(y, dtype=float)
    if y.ndim != 1:
        raise InvalidInputError(f"Response y has to be one-dimensional, got shape {y.shape}.")
    if not np.all(np.isfinite(y)):
        raise InvalidInputError("Response y contains missing or non-finite values.")

    nparams = 0
    if X is not None:
        X = np.asarray(X, dtype=float)
        if X.ndim != 2 or X.shape[0] != y.size:
            raise InvalidInputError(
                f"Design matrix X has to be two-dimensional with {y.size} rows, got shape {X.shape}."
            )
        if not np.all(np.isfinite(X)):
            raise InvalidInputError("Design matrix X contains missing or non-finite values.")
        nparams = X.shape[1]

    if y.size <= N_THETA + nparams:
        raise InvalidInputError(
            f"Too few observations: {y.size} observations for {N_THETA + nparams} parameters."
        )
    if getattr(family, "truncated", False):
        left, right = family.bounds
        if np.any(y < left) or np.any(y > right):
            raise InvalidInputError(
                f"Observations outside the truncation interval [{left}, {right}]."
            )
    return y, X


# --- EM sub-steps ---


def _run_step(step: str, iteration: int, func: Callable, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except _NUMERICAL_ERRORS as err:
        raise EMFitError(f"{type(err).__name__}: {err}", step=step, iteration=iteration) from err


def _mixing_update(X: Optional[np.ndarray], response: np.ndarray, alpha: Optional[np.ndarray],
                   control: EMControl) -> Tuple[Union[float, np.ndarray], Optional[np.ndarray],
                                                Optional[IWLSResult]]:
    """M-step for the mixing proportion: sample mean, or an IWLS fit on the concomitants."""
    if X is None:
        return float(clip_probability(np.mean(response))), None, None
    iwls = iwls_logit(X, response, alpha=alpha, standardize=control.standardize,
                      maxit=control.maxit_iwls, tol=control.tol_iwls)
    return iwls.prob, iwls.alpha, iwls


def _check_finite(step: str, iteration: int, theta: Theta = None, posterior: np.ndarray = None,
                  loglik: LogLikelihood = None):
    if theta is not None and not theta.is_finite():
        raise EMFitError(f"Non-finite component parameters {tuple(theta)}", step=step, iteration=iteration)
    if posterior is not None and not np.all(np.isfinite(posterior)):
        raise EMFitError("Non-finite posterior probabilities", step=step, iteration=iteration)
    if loglik is not None and not np.isfinite(loglik.full):
        raise EMFitError(f"Non-finite log-likelihood {loglik.full}", step=step, iteration=iteration)


def _initialize(y: np.ndarray, X: Optional[np.ndarray], family: FamilyProtocol,
                control: EMControl) -> _Iterate:
    split = control.split_threshold(y)
    membership = (y >= split).astype(float)
    if control.switch:
        membership = 1.0 - membership

    theta = _run_step("initialize", 0, family.theta_update, y, membership, init=True)
    _check_finite("initialize", 0, theta=theta)
    if X is None:
        mixing_prob, alpha, iwls = 0.5, None, None
    else:
        mixing_prob, alpha, iwls = _run_step("initialize", 0, _mixing_update, X, membership, None, control)
    posterior = _run_step("initialize", 0, family.posterior_update, y, mixing_prob, theta)
    _check_finite("initialize", 0, posterior=posterior)
    return _Iterate(0, theta, alpha, mixing_prob, posterior, None, iwls)


# --- Main EM Fitting Function ---


def fit_mixture(y,
                X=None,
                family: Union[str, FamilyProtocol, None] = None,
                control: Optional[EMControl] = None) -> FitResult:
    """
    Fits a two-component mixture model by Expectation-Maximization.

    Component 2 is the "event" component (e.g. foehn). Without concomitants
    its probability is a constant pi; with a design matrix X it is modeled
    as logit(pi_i) = x_i' alpha and updated by IWLS in every M-step.

    Args:
        y: Observations (1-d, finite).
        X: Optional design matrix (N x K) of concomitant covariates, usually
           with a constant first column.
        family: A family object (see foehnmix.families), a family name
                ('gaussian' or 'logistic'), or None for the plain Gaussian.
        control: EMControl. Defaults to EMControl().

    Returns:
        FitResult in state CONVERGED (the last improving iterate) or
        MAX_ITER_REACHED (the final iterate).

    Raises:
        InvalidInputError: on malformed inputs or too few observations.
        EMFitError: if a numerical sub-step fails (state FAILED). The
                    original error is available as __cause__.
    """
    start_time = time.time()
    control = EMControl() if control is None else control
    family = _resolve_family(family, control)
    y, X = _validate_inputs(y, X, family)
    nobs = y.size
    nparams = 0 if X is None else X.shape[1]

    # --- Initialization ---
    state = FitState.INITIALIZING
    if control.verbose:
        print(f"Starting EM fitting of a two-component {family.name} mixture: "
              f"{nobs} observations, {nparams} concomitant coefficients (state: {state.value})...")
    current = _initialize(y, X, family, control)
    previous = None
    history: List[IterationRecord] = []
    if control.verbose:
        print(f"Initial Theta: {current.theta}")

    # --- Iterations ---
    state = FitState.ITERATING
    reason = f"Maximum number of iterations ({control.maxit}) reached."
    pbar = tqdm(range(1, control.maxit + 1), desc="EM Iteration", disable=not control.verbose, leave=True)
    for iteration in pbar:
        # M-step for the mixing proportion
        mixing_prob, alpha, iwls = _run_step("mixing", iteration, _mixing_update,
                                             X, current.posterior, current.alpha, control)
        # M-step for the component parameters
        theta = _run_step("theta", iteration, family.theta_update,
                          y, current.posterior, init=False, theta=current.theta)
        _check_finite("theta", iteration, theta=theta)
        # E-step
        posterior = _run_step("posterior", iteration, family.posterior_update, y, mixing_prob, theta)
        _check_finite("posterior", iteration, posterior=posterior)

        loglik = _run_step("loglik", iteration, family.log_likelihood, y, posterior, mixing_prob, theta)
        _check_finite("loglik", iteration, loglik=loglik)

        history.append(IterationRecord(iteration=iteration, theta=theta,
                                       alpha=None if alpha is None else np.array(alpha),
                                       mean_prob=float(np.mean(mixing_prob)), loglik=loglik))
        previous, current = current, _Iterate(iteration, theta, alpha, mixing_prob, posterior, loglik, iwls)
        pbar.set_postfix({'logLik': f"{loglik.full:.4f}"})

        if previous.loglik is not None:
            improvement = loglik.full - previous.loglik.full
            if improvement < control.tol:
                state = FitState.CONVERGED
                reason = (f"Log-likelihood improvement {improvement:.3g} below tolerance {control.tol:g}; "
                          f"returning iteration {previous.iteration}.")
                break
    else:
        state = FitState.MAX_ITER_REACHED
        if control.verbose:
            warnings.warn(f"EM did not converge after {control.maxit} iterations.")

    pbar.close()

    # The non-improving iterate stays in the history but is never the result
    final = previous if state is FitState.CONVERGED else current

    if control.verbose and state is FitState.CONVERGED:
        print(f"\nConvergence reached after {final.iteration} iterations.")
    if control.verbose:
        print(f"EM finished in state: {state.value}")

    # --- Post-Convergence Calculations ---
    edf = N_THETA + (1 if X is None else nparams)
    aic, bic = calculate_information_criteria(final.loglik.full, nobs, edf)
    execution_time = time.time() - start_time

    if control.verbose:
        print(f"Final log-likelihood: {final.loglik.full:.4f} "
              f"(component {final.loglik.component:.4f}, concomitant {final.loglik.concomitant:.4f})")
        print(f"AIC: {aic:.4f}, BIC: {bic:.4f}")
        print(f"Final Theta: mu1={final.theta.mu1:.4f}, sigma1={final.theta.sigma1:.4f}, "
              f"mu2={final.theta.mu2:.4f}, sigma2={final.theta.sigma2:.4f}")
        print(f"Total fitting time: {execution_time:.2f} seconds")

    return FitResult(
        theta=final.theta,
        alpha=final.alpha,
        posterior=final.posterior,
        mixing_prob=final.mixing_prob,
        loglik=final.loglik,
        iterations=final.iteration,
        converged=state is FitState.CONVERGED,
        state=state,
        reason=reason,
        history=history,
        family=family.name,
        nobs=nobs,
        edf=edf,
        aic=aic,
        bic=bic,
        iwls=final.iwls,
        execution_time=execution_time,
    )


# --- Diagnostics ---


def history_frame(fit_result: FitResult) -> pd.DataFrame:
    """
    Converts the iteration history of a fit into a DataFrame.

    One row per EM iteration with the component parameters, the mean mixing
    probability, the concomitant coefficients (alpha_0, alpha_1, ...) if any,
    and the log-likelihood decomposition.
    """
    rows = []
    for record in fit_result.history:
        row = {'iteration': record.iteration}
        row.update(record.theta._asdict())
        row['mean_prob'] = record.mean_prob
        if record.alpha is not None:
            row.update({f"alpha_{k}": value for k, value in enumerate(record.alpha)})
        row['loglik_component'] = record.loglik.component
        row['loglik_concomitant'] = record.loglik.concomitant
        row['loglik'] = record.loglik.full
        rows.append(row)
    return pd.DataFrame(rows)


# --- Parallel independent fits ---


def fit_many(jobs: List[Dict[str, Any]], n_jobs: int = -1) -> List[FitResult]:
    """
    Runs independent mixture fits in parallel using joblib.

    Every job owns its data and history; nothing is shared between fits.

    Args:
        jobs: One dict of fit_mixture keyword arguments per fit
              (keys 'y', 'X', 'family', 'control').
        n_jobs: Number of parallel workers (-1 uses all cores).

    Returns:
        List of FitResult in the order of `jobs`. A failing fit raises its
        EMFitError (or InvalidInputError) here.
    """
    return Parallel(n_jobs=n_jobs)(delayed(fit_mixture)(**job) for job in jobs)
