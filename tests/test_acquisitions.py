from functools import partial
import math
import jax.numpy as jnp
import jax.random as jr
from jax import config
import pytest
from pytest import approx
from gpbo import gpopt
from gpbo.algorithms import Tuning
from gpbo.algorithms.dispatch import (
    ACQUISITIONS,
    choose,
    make_tuning,
    ucb_beta,
    validate_method,
)
from gpbo.algorithms.sampling import (
    expected_maximum,
    max_quantiles,
    sample_gumbel_maxima,
    sample_maximizers,
)
from gpbo.config import METHODS, BOConfig
from gpbo.errors import UnknownAcquisitionError
from gpbo.gp.gaussian_distribution import truncated_above, truncated_below
from gpbo.gp.hyperopt import Hyperparameters
from gpbo.model import SurrogateModel
from gpbo.optimize import global_minimize

config.update("jax_enable_x64", True)

key = jr.PRNGKey(0)
xmin = jnp.zeros(2)
xmax = jnp.ones(2)
X = jnp.array([[0.1, 0.2], [0.5, 0.5], [0.9, 0.3], [0.4, 0.8]])
y = -jnp.sum(jnp.square(X - 0.6), axis=1)

model = SurrogateModel(X, y)
model.set_hypers(
    Hyperparameters(
        lengthscale=jnp.array([[0.3, 0.3], [0.5, 0.4]]),
        signal_variance=jnp.array([0.1, 0.2]),
        noise_variance=jnp.array([1e-4, 1e-3]),
    )
)
model.rebuild_caches()

tuning = Tuning(t=1, nK=3, nFeatures=100, n_grid=200)
optimizer = partial(global_minimize, n_candidates=100, num_iters=10)


def test_registry_matches_methods():
    assert set(ACQUISITIONS) == set(METHODS)


def test_unknown_method():
    with pytest.raises(UnknownAcquisitionError):
        validate_method("SOBOL")
    with pytest.raises(UnknownAcquisitionError):
        BOConfig(bo_method="jes").validate()


def test_ucb_beta():
    delta = 0.01
    expected = math.sqrt(
        2 * math.log(2 * math.pi**2 / (3 * delta))
        + 2 * 2 * math.log(2 * math.sqrt(math.log(4 * 2 / delta)))
    )
    assert ucb_beta(1, xmin, xmax) == approx(expected)
    assert ucb_beta(2, xmin, xmax) > ucb_beta(1, xmin, xmax)


def test_make_tuning():
    config = BOConfig(nK=7)
    assert make_tuning("UCB", 3, xmin, xmax, config).beta == approx(
        ucb_beta(3, xmin, xmax)
    )
    tuning = make_tuning("JES", 3, xmin, xmax, config)
    assert tuning.nK == 7
    assert tuning.t == 3


def test_truncation():
    mean, variance = truncated_above(jnp.array(0.0), jnp.array(1.0), jnp.array(0.0))
    assert float(mean) == approx(-math.sqrt(2 / math.pi))
    assert float(variance) == approx(1 - 2 / math.pi)
    mean, variance = truncated_below(jnp.array(0.0), jnp.array(1.0), jnp.array(0.0))
    assert float(mean) == approx(math.sqrt(2 / math.pi))
    assert float(variance) == approx(1 - 2 / math.pi)


def test_max_quantiles_single_point():
    q = max_quantiles(jnp.array([1.0]), jnp.array([2.0]))
    assert jnp.allclose(q, jnp.array([1.0 - 2 * 0.67449, 1.0, 1.0 + 2 * 0.67449]), atol=1e-4)
    assert float(expected_maximum(jnp.array([1.0]), jnp.array([2.0]))) == approx(
        1.0, abs=1e-2
    )


def test_sampled_maxima_exceed_observations():
    maxima = sample_gumbel_maxima(key, model, xmin, xmax, k=5, n_grid=100)
    assert maxima.shape == (2, 5)
    assert jnp.all(maxima >= jnp.max(y))


def test_sampled_maximizers_in_box():
    X_star, y_star = sample_maximizers(key, model, xmin, xmax, k=3, n_features=100)
    assert X_star.shape == (2, 3, 2)
    assert y_star.shape == (2, 3)
    assert jnp.all(X_star >= xmin) and jnp.all(X_star <= xmax)
    assert jnp.all(y_star >= jnp.max(y))


@pytest.mark.parametrize("method", METHODS)
def test_choose_in_box(method):
    Alg = ACQUISITIONS[method]
    alg = Alg(model=model, xmin=xmin, xmax=xmax, tuning=tuning, optimizer=optimizer)
    x, value = alg.choose(key, guesses=X)
    assert x.shape == (2,)
    assert jnp.all(x >= xmin) and jnp.all(x <= xmax)
    assert jnp.isfinite(value)
    assert float(value) == approx(float(alg.F(x)), rel=1e-6, abs=1e-9)


def test_choose_by_name():
    config = BOConfig(bo_method="EI", nK=3, nFeatures=100)
    x, value = choose("EI", model, xmin, xmax, X, 1, config, key, optimizer=optimizer)
    assert jnp.all(x >= xmin) and jnp.all(x <= xmax)
    assert float(value) >= 0


def test_ucb_prefers_uncertainty():
    alg = ACQUISITIONS["UCB"](
        model=model, xmin=xmin, xmax=xmax, tuning=tuning.replace(alpha=0.0, beta=1.0)
    )
    assert float(alg.F(jnp.array([0.0, 1.0]))) > float(alg.F(X[1]))


def test_ucb_beta_small_box():
    small_min, small_max = jnp.zeros(5), jnp.full(5, 0.01)
    assert ucb_beta(1, small_min, small_max) == 0.0
    assert ucb_beta(1, small_min, small_min) == 0.0
    assert ucb_beta(10**6, small_min, small_max) > 0


def test_ucb_on_small_box():
    small_min, small_max = jnp.zeros(5), jnp.full(5, 0.01)
    config = BOConfig(
        bo_method="UCB",
        epsilon=0.0,
        nM=1,
        lengthscale=jnp.full(5, 0.005),
        signal_variance=1.0,
        noise_variance=1e-4,
        verbose=False,
    )
    results = gpopt(
        lambda x: -jnp.sum(jnp.square(x - 0.005)),
        small_min,
        small_max,
        2,
        initx=jnp.full((1, 5), 0.002),
        config=config,
        optimizer=optimizer,
    )
    assert results.X.shape == (3, 5)
    assert jnp.all(results.X >= small_min) and jnp.all(results.X <= small_max)
