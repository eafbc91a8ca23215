# foehnmix/__init__.py
from .model_interface import (Theta, LogLikelihood, IterationRecord, IWLSResult, FitState, FitResult,
                              FamilyProtocol, OptimizerProtocol)
from .errors import (FoehnmixError, InvalidInputError, NumericalDegeneracyError, ComponentDegeneracyError,
                     RankDeficiencyError, OptimizerConvergenceError, EMFitError)
from .control import EMControl
from .families import (PlainFamily, CensoredFamily, TruncatedFamily, gaussian, logistic, censored_gaussian,
                       censored_logistic, truncated_gaussian, truncated_logistic, get_family, has_left, has_right)
from .optimizer import ScipyOptimizer
from .iwls import iwls_logit
from .em_core import fit_mixture, fit_many, history_frame  # Expose the main fitting functions
from .bic import calculate_information_criteria
from .inference import theta_standard_errors
from .save_utils import save_fit_result, load_fit_result
