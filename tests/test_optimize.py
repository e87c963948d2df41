import jax.numpy as jnp
import jax.random as jr
from jax import config
import pytest
from pytest import approx
from gpbo.optimize import global_maximize, global_minimize
from gpbo.utils import as_bounds, normalize, rand_sample_interval

config.update("jax_enable_x64", True)

key = jr.PRNGKey(0)
xmin = jnp.zeros(2)
xmax = jnp.ones(2)


def quadratic(x):
    return jnp.sum(jnp.square(x - 0.3))


def test_rand_sample_interval():
    X = rand_sample_interval(key, jnp.array([-1.0, 2.0]), jnp.array([1.0, 3.0]), 100)
    assert X.shape == (100, 2)
    assert jnp.all(X[:, 0] >= -1) and jnp.all(X[:, 0] <= 1)
    assert jnp.all(X[:, 1] >= 2) and jnp.all(X[:, 1] <= 3)


def test_as_bounds():
    xmin, xmax = as_bounds([0, 1], [1, 2])
    assert xmin.dtype == jnp.float64
    try:
        as_bounds([0, 1], [1])
    except ValueError:
        pass
    else:
        raise AssertionError("bounds of unequal length must be rejected")
    with pytest.raises(ValueError):
        as_bounds([0.5, 1], [0.5, 1])
    as_bounds([0.5, 0], [0.5, 1])


def test_normalize_constant():
    y, mu, std = normalize(jnp.full(3, 2.0))
    assert jnp.all(y == 0)
    assert float(mu) == approx(2.0)
    assert float(std) == approx(1.0)


def test_minimize_quadratic():
    x, value = global_minimize(key, quadratic, xmin, xmax)
    assert jnp.allclose(x, 0.3, atol=2e-2)
    assert float(value) == approx(0.0, abs=1e-3)


def test_minimize_uses_guesses():
    x, value = global_minimize(
        key, quadratic, xmin, xmax, guesses=jnp.array([[0.3, 0.3]]), n_candidates=10
    )
    assert float(value) == approx(0.0, abs=1e-12)


def test_guesses_are_clipped():
    x, value = global_minimize(
        key,
        lambda x: -jnp.sum(x),
        xmin,
        xmax,
        guesses=jnp.array([[2.0, 2.0]]),
        n_candidates=10,
        num_iters=1,
    )
    assert jnp.all(x == 1.0)
    assert float(value) == approx(-2.0)


def test_maximize():
    x, value = global_maximize(key, lambda x: -quadratic(x), xmin, xmax)
    assert jnp.allclose(x, 0.3, atol=2e-2)
    assert float(value) == approx(0.0, abs=1e-3)
