import numpy as np
import pytest
from scipy.special import expit


@pytest.fixture
def bimodal_sample():
    """1000 draws from a 50/50 mixture of N(0, 1) and N(10, 1), component 1 first."""
    rng = np.random.default_rng(42)
    return np.concatenate([rng.normal(0.0, 1.0, 500), rng.normal(10.0, 1.0, 500)])


@pytest.fixture
def concomitant_sample():
    """Mixture whose event probability depends on a covariate: logit(pi) = -0.5 + 2 x."""
    rng = np.random.default_rng(7)
    n = 1000
    x = rng.normal(size=n)
    event = rng.uniform(size=n) < expit(-0.5 + 2.0 * x)
    y = np.where(event, rng.normal(8.0, 1.0, n), rng.normal(0.0, 1.0, n))
    X = np.column_stack([np.ones(n), x])
    return y, X, event
