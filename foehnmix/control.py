from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from .errors import InvalidInputError
from .model_interface import OptimizerProtocol
from .optimizer import ScipyOptimizer

INIT_SPLITS = ("mean", "median")


@dataclass
class EMControl:
    """
    Control parameters for the EM driver

    Parameters
    ----------
    *** EM iterations ***
    maxit : int (default: 100)
        Maximum number of EM iterations. Reaching it terminates the fit in the
        MAX_ITER_REACHED state with the final iterate as result.
    tol : float (default: 1e-8)
        The fit has converged once the full log-likelihood improves by less
        than `tol` from one iteration to the next.

    *** Concomitant model (IWLS) ***
    maxit_iwls : int (default: 100)
        Maximum number of IWLS iterations per EM step.
    tol_iwls : float (default: 1e-8)
        IWLS convergence tolerance on the binomial log-likelihood.
    standardize : bool (default: True)
        If True, non-constant concomitant covariates are standardized before
        the IWLS solve. Coefficients are always reported on the original scale.

    *** Initialization ***
    init_split : str or float (default: 'mean')
        Threshold for the initial hard split of the observations into the two
        components. Possible values: 'mean', 'median' or a fixed number.
    switch : bool (default: False)
        If True, invert the initial split: observations below the threshold
        start in component 2. Only changes which component is labeled "event".

    *** Numerical optimization (censored/truncated families) ***
    optimizer : OptimizerProtocol (default: ScipyOptimizer())
        Optimizer used by families without a closed-form parameter update.
        Families constructed by the caller keep their own optimizer.

    *** Other ***
    verbose : bool (default: False)
        If True, print progress information and show a progress bar.
    """

    maxit: int = 100
    tol: float = 1e-8
    maxit_iwls: int = 100
    tol_iwls: float = 1e-8
    standardize: bool = True
    init_split: Union[str, float] = "mean"
    switch: bool = False
    optimizer: Optional[OptimizerProtocol] = field(default_factory=ScipyOptimizer)
    verbose: bool = False

    def __post_init__(self):
        for name in ("maxit", "maxit_iwls"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
                raise InvalidInputError(f"{name} has to be a positive integer, got {value!r}.")
        for name in ("tol", "tol_iwls"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise InvalidInputError(f"{name} has to be a positive number, got {value!r}.")
        if isinstance(self.init_split, str):
            if self.init_split not in INIT_SPLITS:
                raise InvalidInputError(
                    f"Unknown init_split '{self.init_split}'. Please choose one of {INIT_SPLITS} or a number."
                )
        elif not np.isfinite(self.init_split):
            raise InvalidInputError(f"init_split has to be finite, got {self.init_split!r}.")

    def split_threshold(self, y: np.ndarray) -> float:
        """Threshold of the initial hard split for observations y."""
        if self.init_split == "mean":
            return float(np.mean(y))
        if self.init_split == "median":
            return float(np.median(y))
        return float(self.init_split)
