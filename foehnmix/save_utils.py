# foehnmix/save_utils.py
import joblib
import os
import warnings
from typing import Optional

from .model_interface import FitResult


def save_fit_result(fit_result: FitResult, filename: str, compress: bool = True):
    """
    Saves a FitResult using joblib.

    Missing parent directories are created. I/O errors propagate.

    Args:
        fit_result: The FitResult to save.
        filename: Target path, ideally ending with '.joblib'.
        compress: Whether to use compression (default True).
    """
    if not isinstance(fit_result, FitResult):
        raise TypeError(f"Expected a FitResult, got {type(fit_result).__name__}.")
    save_dir = os.path.dirname(filename)
    if save_dir:
        os.makedirs(save_dir, exist_ok=True)

    joblib.dump(fit_result, filename, compress=compress)
    print(f"Fit result saved successfully to: {filename}")


def load_fit_result(filename: str) -> Optional[FitResult]:
    """
    Loads a FitResult saved with save_fit_result.

    Returns:
        The FitResult, or None if the file does not exist or holds another object.
    """
    if not os.path.exists(filename):
        # Calling function decides whether a missing file is an error
        return None
    fit_result = joblib.load(filename)
    if not isinstance(fit_result, FitResult):
        warnings.warn(f"Loaded object from {filename} is not of type FitResult.")
        return None
    return fit_result
