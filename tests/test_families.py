import numpy as np
import pytest
from scipy.stats import norm

from foehnmix.errors import ComponentDegeneracyError, InvalidInputError
from foehnmix.families import (CensoredFamily, PlainFamily, TruncatedFamily, censored_gaussian, censored_logistic,
                               gaussian, get_family, has_left, has_right, logistic, truncated_gaussian)
from foehnmix.model_interface import Theta
from foehnmix.transforms import LOGSD_FLOOR


class TestFactory:
    def test_plain_without_bounds(self):
        family = get_family("gaussian")
        assert isinstance(family, PlainFamily)
        assert family.name == "Gaussian"
        assert family.bounds == (-np.inf, np.inf)

    def test_finite_bound_gives_censored(self):
        family = get_family("Logistic", left=0.0)
        assert isinstance(family, CensoredFamily)
        assert family.name == "censored logistic"
        assert has_left(family) and not has_right(family)

    def test_truncated_flag(self):
        family = get_family("gaussian", right=5.0, truncated=True)
        assert isinstance(family, TruncatedFamily)
        assert not has_left(family) and has_right(family)

    def test_unknown_family_raises(self):
        with pytest.raises(InvalidInputError, match="Unknown family"):
            get_family("gamma")

    @pytest.mark.parametrize("left, right", [(1.0, 1.0), (2.0, 1.0), (np.nan, 1.0)])
    def test_malformed_bounds_raise(self, left, right):
        with pytest.raises(InvalidInputError):
            censored_gaussian(left=left, right=right)

    def test_non_scalar_bounds_raise(self):
        with pytest.raises(InvalidInputError, match="length 1"):
            get_family("gaussian", left=[0.0, 1.0])


class TestDensity:
    def test_rejects_vector_parameters(self):
        with pytest.raises(InvalidInputError, match="have to be of length 1"):
            gaussian().density([0.0, 1.0], mu=[0.0, 1.0], sigma=1.0)

    def test_plain_matches_scipy(self):
        y = np.linspace(-3, 3, 7)
        assert np.allclose(gaussian().density(y, 0.5, 2.0, log=True), norm.logpdf(y, 0.5, 2.0))
        assert np.allclose(gaussian().distribution(y, 0.5, 2.0, lower_tail=False), norm.sf(y, 0.5, 2.0))

    def test_censored_zeros_take_point_mass_branch(self):
        family = censored_gaussian(left=0.0)
        y = np.array([0.0, 0.0, 1.5])
        logd = family.density(y, 1.0, 2.0, log=True)
        assert np.allclose(logd[:2], norm.logcdf(0.0, 1.0, 2.0))
        assert not np.isclose(logd[0], norm.logpdf(0.0, 1.0, 2.0))
        assert logd[2] == pytest.approx(norm.logpdf(1.5, 1.0, 2.0))


class TestThetaUpdate:
    def test_plain_hard_labels_reproduce_group_moments(self):
        rng = np.random.default_rng(5)
        y = np.concatenate([rng.normal(0, 1, 40), rng.normal(6, 2, 60)])
        post = np.r_[np.zeros(40), np.ones(60)]
        theta = gaussian().theta_update(y, post)
        assert theta.mu1 == pytest.approx(np.mean(y[:40]))
        assert theta.sigma1 == pytest.approx(np.std(y[:40], ddof=0))
        assert theta.mu2 == pytest.approx(np.mean(y[40:]))
        assert theta.sigma2 == pytest.approx(np.std(y[40:], ddof=0))

    def test_logistic_scale_from_standard_deviation(self):
        y = np.array([0.0, 1.0, 2.0, 10.0, 11.0, 13.0])
        post = np.r_[np.zeros(3), np.ones(3)]
        theta = logistic().theta_update(y, post)
        assert theta.sigma1 == pytest.approx(np.std(y[:3]) * np.sqrt(3) / np.pi)

    def test_init_uses_common_sample_sd(self):
        y = np.array([0.0, 1.0, 2.0, 10.0, 11.0, 13.0])
        theta = gaussian().theta_update(y, np.r_[np.zeros(3), np.ones(3)], init=True)
        assert theta.logsd1 == theta.logsd2 == pytest.approx(np.log(np.std(y, ddof=1)))

    def test_identical_observations_floor_log_scale(self):
        y = np.full(10, 3.0)
        theta = gaussian().theta_update(y, np.r_[np.zeros(5), np.ones(5)])
        assert theta.logsd1 == LOGSD_FLOOR
        assert theta.logsd2 == LOGSD_FLOOR
        assert theta.mu1 == theta.mu2 == 3.0

    def test_empty_component_raises(self):
        with pytest.raises(ComponentDegeneracyError):
            gaussian().theta_update(np.arange(6.0), np.ones(6))

    def test_censored_update_recovers_parameters(self):
        family = censored_gaussian(left=0.0)
        y = family.sample(2000, mu=[1.0, 6.0], sigma=[1.0, 1.0], random_state=1)
        post = np.r_[np.zeros(1000), np.ones(1000)]
        theta = family.theta_update(y, post)
        assert theta.mu1 == pytest.approx(1.0, abs=0.15)
        assert theta.sigma1 == pytest.approx(1.0, abs=0.15)
        assert theta.mu2 == pytest.approx(6.0, abs=0.15)
        assert theta.mu2 > theta.mu1

    def test_truncated_update_recovers_parameters(self):
        family = truncated_gaussian(left=0.0)
        y = family.sample(2000, mu=[1.0, 6.0], sigma=[1.0, 1.0], random_state=2)
        post = np.r_[np.zeros(1000), np.ones(1000)]
        theta = family.theta_update(y, post)
        assert theta.mu1 == pytest.approx(1.0, abs=0.2)
        assert theta.sigma1 == pytest.approx(1.0, abs=0.2)
        assert theta.mu2 == pytest.approx(6.0, abs=0.15)

    def test_censored_update_keeps_seed_ordering(self):
        family = censored_logistic(left=0.0)
        y = family.sample(600, mu=[5.0, 1.0], sigma=[1.0, 1.0], random_state=4)
        post = np.r_[np.zeros(300), np.ones(300)]
        theta = family.theta_update(y, post, theta=Theta(5.0, 0.0, 1.0, 0.0))
        assert theta.mu2 < theta.mu1


class TestPosteriorAndLikelihood:
    @pytest.mark.parametrize("family", [gaussian(), logistic(), censored_gaussian(left=0.0),
                                        truncated_gaussian(left=-5.0, right=1e4)])
    def test_posterior_in_unit_interval(self, family):
        y = np.array([0.0, 0.5, 3.0, 10.0, 1e3])
        prob = np.array([1e-9, 0.2, 0.5, 0.8, 1 - 1e-9])
        post = family.posterior_update(y, prob, Theta(0.0, 0.0, 10.0, 0.5))
        assert np.all(np.isfinite(post))
        assert np.all((post >= 0) & (post <= 1))

    def test_posterior_falls_back_to_prior_without_support(self):
        family = truncated_gaussian(left=0.0, right=1.0)
        post = family.posterior_update(np.array([2.0]), 0.3, Theta(0.2, 0.0, 0.8, 0.0))
        assert post[0] == pytest.approx(0.3)

    def test_log_likelihood_decomposition(self):
        rng = np.random.default_rng(9)
        y = rng.normal(size=50)
        post = rng.uniform(size=50)
        ll = gaussian().log_likelihood(y, post, 0.4, Theta(-1.0, 0.0, 1.0, 0.0))
        assert ll.full == pytest.approx(ll.component + ll.concomitant)
        expected = np.sum((1 - post) * np.log(0.6) + post * np.log(0.4))
        assert ll.concomitant == pytest.approx(expected)


class TestSampling:
    def test_sizes_and_bounds(self):
        assert gaussian().sample(11, [0, 5], [1, 1], random_state=0).size == 11
        censored = censored_gaussian(left=0.0, right=4.0).sample([100, 50], [0, 5], [1, 1], random_state=0)
        assert censored.size == 150
        assert censored.min() >= 0.0 and censored.max() <= 4.0
        truncated = truncated_gaussian(left=0.0).sample(200, [0, 5], [1, 1], random_state=0)
        assert truncated.min() >= 0.0

    def test_requires_two_component_parameters(self):
        with pytest.raises(InvalidInputError, match="length 2"):
            gaussian().sample(10, mu=0.0, sigma=1.0)
