import numpy as np
import pytest
from scipy.special import expit

from foehnmix.errors import InvalidInputError, RankDeficiencyError
from foehnmix.iwls import binomial_loglik, iwls_logit


@pytest.fixture
def logistic_design():
    rng = np.random.default_rng(1)
    x = rng.normal(size=500)
    X = np.column_stack([np.ones_like(x), x])
    return X, expit(3.0 * x)


class TestIWLS:
    def test_recovers_coefficients_in_few_iterations(self, logistic_design):
        X, post = logistic_design
        result = iwls_logit(X, post)
        assert result.converged
        assert result.iterations <= 10
        assert np.allclose(result.alpha, [0.0, 3.0], atol=1e-4)

    def test_standardization_does_not_change_coefficients(self, logistic_design):
        X, post = logistic_design
        standardized = iwls_logit(X, post, standardize=True)
        raw = iwls_logit(X, post, standardize=False)
        assert np.allclose(standardized.alpha, raw.alpha, atol=1e-5)
        assert np.allclose(standardized.std_error, raw.std_error, rtol=1e-3)
        assert np.allclose(raw.alpha, raw.beta)

    def test_design_without_intercept(self, logistic_design):
        X, post = logistic_design
        result = iwls_logit(X[:, 1:], post)
        assert np.allclose(result.alpha, [3.0], atol=1e-4)

    def test_warm_start(self, logistic_design):
        X, post = logistic_design
        result = iwls_logit(X, post, alpha=np.array([0.1, 2.9]))
        assert np.allclose(result.alpha, [0.0, 3.0], atol=1e-4)

    def test_probabilities_strictly_inside_unit_interval(self):
        x = np.linspace(-5, 5, 200)
        X = np.column_stack([np.ones_like(x), x])
        result = iwls_logit(X, expit(8.0 * x))
        assert np.all(result.prob > 0.0)
        assert np.all(result.prob < 1.0)

    def test_standard_errors_from_inverse_information(self, logistic_design):
        X, post = logistic_design
        result = iwls_logit(X, post)
        w = result.prob * (1 - result.prob)
        cov = np.linalg.inv((X.T * w) @ X)
        assert np.allclose(result.std_error, np.sqrt(np.diag(cov)), rtol=1e-5)

    def test_information_criteria(self, logistic_design):
        X, post = logistic_design
        result = iwls_logit(X, post)
        assert result.edf == 2
        assert result.loglik == pytest.approx(binomial_loglik(post, result.prob))
        assert result.aic == pytest.approx(-2 * result.loglik + 4)
        assert result.bic == pytest.approx(-2 * result.loglik + 2 * np.log(500))

    def test_non_convergence_warns(self, logistic_design):
        X, post = logistic_design
        with pytest.warns(RuntimeWarning, match="did not converge"):
            result = iwls_logit(X, post, maxit=1)
        assert not result.converged
        assert result.iterations == 1

    def test_collinear_design_raises(self, logistic_design):
        X, post = logistic_design
        collinear = np.column_stack([X, 2.0 * X[:, 1]])
        with pytest.raises(RankDeficiencyError):
            iwls_logit(collinear, post)

    @pytest.mark.parametrize("response", [np.full(500, 1.5), np.full(500, np.nan)])
    def test_invalid_response_raises(self, logistic_design, response):
        X, _ = logistic_design
        with pytest.raises(InvalidInputError):
            iwls_logit(X, response)

    def test_shape_mismatch_raises(self, logistic_design):
        X, post = logistic_design
        with pytest.raises(InvalidInputError, match="Shape mismatch"):
            iwls_logit(X[:10], post)
