import numpy as np
import pytest
from scipy.stats import norm

from foehnmix.errors import ComponentDegeneracyError
from foehnmix.math_utils import log_add_exp, log_diff_exp, weighted_moments
from foehnmix.model_interface import Theta
from foehnmix.transforms import (EPSILON, LOGSD_FLOOR, clip_probability, location_direction, optim_to_theta,
                                 theta_to_optim, transform_sigma)


class TestLogDiffExp:
    def test_matches_natural_scale_for_moderate_values(self):
        out = log_diff_exp(np.log(0.7), np.log(0.2))
        assert np.isclose(out, np.log(0.5))

    def test_equal_inputs_give_minus_inf(self):
        assert np.isneginf(log_diff_exp(np.log(0.3), np.log(0.3)))

    def test_minus_inf_subtrahend_returns_first_argument(self):
        assert log_diff_exp(-2.5, -np.inf) == -2.5

    def test_deep_tail_stays_finite(self):
        # sf(30) - sf(31) underflows to 0 on the natural scale
        out = log_diff_exp(norm.logsf(30.0), norm.logsf(31.0))
        assert np.isfinite(out)
        assert np.isclose(out, norm.logsf(30.0), rtol=1e-6)

    def test_vectorized(self):
        a = np.log([0.9, 0.5, 0.1])
        b = np.log([0.1, 0.25, 0.05])
        assert np.allclose(log_diff_exp(a, b), np.log([0.8, 0.25, 0.05]))


def test_log_add_exp_matches_numpy():
    a = np.array([-1000.0, 0.0, 3.0, -np.inf])
    b = np.array([-1001.0, 1.0, -2.0, 0.5])
    assert np.allclose(log_add_exp(a, b), np.logaddexp(a, b))


class TestWeightedMoments:
    def test_hard_weights_give_group_mean_and_population_sd(self):
        y = np.array([1.0, 2.0, 4.0, 10.0, 12.0])
        w = np.array([1.0, 1.0, 1.0, 0.0, 0.0])
        mu, sd = weighted_moments(y, w, component=1)
        assert mu == pytest.approx(np.mean(y[:3]))
        assert sd == pytest.approx(np.std(y[:3], ddof=0))

    def test_zero_weight_raises(self):
        with pytest.raises(ComponentDegeneracyError, match="Component 2"):
            weighted_moments(np.arange(5.0), np.zeros(5), component=2)


class TestTransforms:
    def test_clip_probability_bounds(self):
        p = clip_probability([0.0, 0.5, 1.0])
        assert p[0] == EPSILON
        assert p[1] == 0.5
        assert p[2] == 1.0 - EPSILON

    def test_transform_sigma_floors_small_scales(self):
        assert transform_sigma(0.0) == LOGSD_FLOOR
        assert transform_sigma(1e-5) == LOGSD_FLOOR
        assert transform_sigma(np.nan) == LOGSD_FLOOR
        assert transform_sigma(2.0) == pytest.approx(np.log(2.0))

    @pytest.mark.parametrize("theta", [Theta(0.0, 0.1, 10.0, -0.2), Theta(3.0, 0.0, -1.5, 0.4)])
    def test_ordered_reparameterization_preserves_direction(self, theta):
        direction = location_direction(theta)
        back = optim_to_theta(theta_to_optim(theta), direction)
        assert np.allclose(back.as_array(), theta.as_array())

    def test_gap_cannot_flip_the_ordering(self):
        par = theta_to_optim(Theta(0.0, 0.0, 1.0, 0.0))
        par[2] = -50.0
        theta = optim_to_theta(par, direction=1.0)
        assert theta.mu2 >= theta.mu1
