# foehnmix/errors.py
from .model_interface import FitState


class FoehnmixError(Exception):
    """Base class for all errors raised by foehnmix."""


class InvalidInputError(FoehnmixError, ValueError):
    """Wrong-shaped parameters, malformed bounds or too few observations."""


class NumericalDegeneracyError(FoehnmixError, RuntimeError):
    """A numerical sub-step could not produce a finite, usable estimate."""


class ComponentDegeneracyError(NumericalDegeneracyError):
    """A mixture component received zero total posterior weight."""


class RankDeficiencyError(NumericalDegeneracyError):
    """The IWLS cross-product matrix X'WX is singular or near-singular."""


class OptimizerConvergenceError(NumericalDegeneracyError):
    """The numerical optimizer did not converge within its iteration budget."""


class EMFitError(FoehnmixError, RuntimeError):
    """
    Raised when the EM driver enters the FAILED state.

    Args:
        message: Description of the failure.
        step: Name of the EM sub-step that failed
              ('initialize', 'mixing', 'theta', 'posterior' or 'loglik').
        iteration: EM iteration index (0 during initialization).
    """

    def __init__(self, message: str, step: str, iteration: int):
        super().__init__(f"{message} (step: {step}, iteration: {iteration})")
        self.message = message
        self.step = step
        self.iteration = iteration
        self.state = FitState.FAILED

    def __reduce__(self):
        # joblib workers send exceptions back pickled
        return type(self), (self.message, self.step, self.iteration)
