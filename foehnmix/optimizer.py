import warnings
from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.optimize import minimize, OptimizeResult

from .errors import OptimizerConvergenceError

# scipy status codes for gradient-based minimizers
_STATUS_MAXITER = 1
_STATUS_PRECISION_LOSS = 2


@dataclass(frozen=True)
class ScipyOptimizer:
    """
    Quasi-Newton minimization via scipy.optimize.minimize.

    Gradients are approximated by finite differences. The search is bounded
    by `maxiter`; hitting the bound is reported as an error.

    Args:
        method: Any unconstrained scipy.optimize.minimize method ('BFGS' by default).
        maxiter: Maximum number of optimizer iterations.
        gtol: Gradient norm tolerance.
    """

    method: str = "BFGS"
    maxiter: int = 200
    gtol: float = 1e-5

    def minimize(self, fun: Callable[[np.ndarray], float], x0: np.ndarray) -> OptimizeResult:
        options = {"maxiter": self.maxiter}
        if self.method.upper() in ("BFGS", "CG", "L-BFGS-B"):
            options["gtol"] = self.gtol

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            opt_result = minimize(fun, np.asarray(x0, dtype=float), method=self.method, options=options)

        if not np.all(np.isfinite(opt_result.x)) or not np.isfinite(opt_result.fun):
            raise OptimizerConvergenceError(
                f"{self.method} returned a non-finite solution. Message: {opt_result.message}"
            )
        if not opt_result.success:
            if opt_result.status == _STATUS_PRECISION_LOSS:
                # precision loss near the optimum, keep the finite solution
                warnings.warn(f"{self.method}: {opt_result.message}", RuntimeWarning)
            elif opt_result.status == _STATUS_MAXITER or opt_result.nit >= self.maxiter:
                raise OptimizerConvergenceError(
                    f"{self.method} did not converge within {self.maxiter} iterations. "
                    f"Message: {opt_result.message}"
                )
            else:
                raise OptimizerConvergenceError(f"{self.method} failed. Message: {opt_result.message}")
        return opt_result
