import jax.numpy as jnp
from jax import config
import pytest
from pytest import approx
from gpbo.errors import StaleCacheError
from gpbo.gp.gram import gram_inverse
from gpbo.gp.hyperopt import Hyperparameters
from gpbo.model import SurrogateModel

config.update("jax_enable_x64", True)

X = jnp.array([[-1], [-0.5], [0], [0.5], [1]], dtype=float)
y = jnp.sin(X).T[0]


def hypers(nM=2):
    return Hyperparameters(
        lengthscale=jnp.array([[1.0], [0.5]])[:nM],
        signal_variance=jnp.array([1.0, 2.0])[:nM],
        noise_variance=jnp.full(nM, 1e-4),
    )


def fresh_model(**kwargs):
    model = SurrogateModel(X, y, **kwargs)
    model.set_hypers(hypers())
    model.rebuild_caches()
    return model


def test_stale_before_rebuild():
    model = SurrogateModel(X, y)
    assert model.stale
    with pytest.raises(StaleCacheError):
        model.hypers
    model.set_hypers(hypers())
    with pytest.raises(StaleCacheError):
        model.kernel_matrix_inv
    model.rebuild_caches()
    assert not model.stale
    assert model.kernel_matrix_inv.shape == (2, 5, 5)
    assert model.alpha.shape == (2, 5)


def test_append_invalidates():
    model = fresh_model()
    model.append(jnp.array([0.25]), jnp.sin(0.25))
    assert model.n == 6
    assert model.stale
    with pytest.raises(StaleCacheError):
        model.mean_var(jnp.array([0.0]))
    model.rebuild_caches()
    assert model.kernel_matrix_inv.shape == (2, 6, 6)


def test_set_hypers_invalidates():
    model = fresh_model()
    model.set_hypers(hypers(nM=1))
    with pytest.raises(StaleCacheError):
        model.alpha
    model.rebuild_caches()
    assert model.kernel_matrix_inv.shape == (1, 5, 5)


def test_rebuild_matches_direct_inverse():
    model = fresh_model()
    for j in range(2):
        K_inv = gram_inverse(X, *model.hypers.sample(j))
        assert jnp.allclose(model.kernel_matrix_inv[j], K_inv)
        assert jnp.allclose(model.alpha[j], K_inv @ y)


def test_interpolation():
    model = fresh_model()
    mean, variance = model.mean_var(X[2])
    assert mean.shape == (2,)
    assert jnp.allclose(mean, y[2], atol=1e-2)
    assert jnp.all(variance < 1e-2)
    assert jnp.all(variance > 0)
    assert float(model.posterior_mean(X[2])) == approx(float(y[2]), abs=1e-2)


def test_far_from_data():
    model = fresh_model()
    mean, variance = model.mean_var(jnp.array([10.0]))
    assert jnp.allclose(mean, 0.0, atol=1e-6)
    assert jnp.allclose(variance, model.hypers.signal_variance)


def test_posterior_mean_gradient():
    model = fresh_model()
    x = jnp.array([0.1])
    eps = 1e-6
    finite_difference = (
        model.posterior_mean(x + eps) - model.posterior_mean(x - eps)
    ) / (2 * eps)
    assert float(model.posterior_mean_gradient(x)[0]) == approx(
        float(finite_difference), abs=1e-5
    )


def test_normalize():
    model = fresh_model(normalize=True)
    assert float(jnp.mean(model.y)) == approx(0.0, abs=1e-12)
    assert float(jnp.std(model.y)) == approx(1.0)
    assert jnp.allclose(model.unnorm_y, y)
    assert float(model.denormalize(model.y[0])) == approx(float(y[0]))


def test_per_sample_queries():
    model = fresh_model()
    x = jnp.array([0.3])
    mean, variance = model.mean_var(x)
    for j in range(2):
        assert float(model.mean_j(x, j)) == approx(float(mean[j]))
        assert float(model.variance_j(x, j)) == approx(float(variance[j]))
    assert float(model.posterior_mean(x)) == approx(float(jnp.mean(mean)))
