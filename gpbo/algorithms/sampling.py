from functools import partial
from typing import Tuple
from jax import grad, jit, lax, vmap
import jax.numpy as jnp
import jax.random as jr
import jax.scipy.stats as jstats
from jaxtyping import Array, Float
import optax
from gpbo.errors import NotPositiveDefiniteError
from gpbo.gp.features import FeatureSample, sample_posterior_function
from gpbo.gp.gram import JITTER
from gpbo.gp.kernels.stationary import Gaussian
from gpbo.model import SurrogateModel
from gpbo.typing import KeyArray, ScalarFloat
from gpbo.utils import rand_sample_interval

QUANTILES = jnp.array([0.25, 0.5, 0.75])


def grid_moments(
    key: KeyArray,
    model: SurrogateModel,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    n_grid: int,
) -> Tuple[Float[Array, "m g"], Float[Array, "m g"]]:
    """Posterior means and standard deviations at the observed points and `n_grid` random points, per hyperparameter sample."""
    grid = jnp.concatenate(
        (model.X, rand_sample_interval(key, xmin, xmax, n_grid)), axis=0
    )
    mean, variance = vmap(model.mean_var)(grid)
    return mean.T, jnp.sqrt(variance).T


@jit
def log_cdf_max(
    y: ScalarFloat, mean: Float[Array, "g"], stddev: Float[Array, "g"]
) -> ScalarFloat:
    r"""$\log \Pr[\max_i f(\mathbf{x}_i) < y]$ when the $f(\mathbf{x}_i)$ are treated as independent."""
    return jnp.sum(jstats.norm.logcdf((y - mean) / stddev))


def _max_range(
    mean: Float[Array, "g"], stddev: Float[Array, "g"]
) -> Tuple[ScalarFloat, ScalarFloat]:
    return jnp.max(mean) - 5 * jnp.max(stddev), jnp.max(mean + 5 * stddev)


@jit
def max_quantiles(
    mean: Float[Array, "g"], stddev: Float[Array, "g"]
) -> Float[Array, "3"]:
    """Quartiles of the approximate distribution of the maximum, found by bisection."""
    lower, upper = _max_range(mean, stddev)
    log_q = jnp.log(QUANTILES)

    def step(i, bounds):
        lower, upper = bounds
        mid = (lower + upper) / 2
        below = vmap(lambda y: log_cdf_max(y, mean, stddev))(mid) < log_q
        return jnp.where(below, mid, lower), jnp.where(below, upper, mid)

    lower, upper = lax.fori_loop(
        0, 60, step, (jnp.full(3, lower), jnp.full(3, upper))
    )
    return (lower + upper) / 2


@partial(jit, static_argnums=3)
def gumbel_maxima(
    key: KeyArray,
    mean: Float[Array, "g"],
    stddev: Float[Array, "g"],
    k: int,
) -> Float[Array, "k"]:
    """Samples `k` maxima from a Gumbel distribution fitted to the quartiles of the approximate distribution of the maximum."""
    q25, q50, q75 = max_quantiles(mean, stddev)
    b = (q25 - q75) / (jnp.log(jnp.log(4 / 3)) - jnp.log(jnp.log(4.0)))
    a = q50 + b * jnp.log(jnp.log(2.0))
    u = jr.uniform(key, (k,), dtype=mean.dtype, minval=1e-12, maxval=1.0)
    return a - b * jnp.log(-jnp.log(u))


@jit
def expected_maximum(mean: Float[Array, "g"], stddev: Float[Array, "g"]) -> ScalarFloat:
    r"""Expectation of the approximate distribution of the maximum, $\int_{y_0}^\infty 1 - \Pr[\max < w] \,dw + y_0$."""
    lower, upper = _max_range(mean, stddev)
    w = jnp.linspace(lower, upper, 500)
    survival = 1 - jnp.exp(vmap(lambda y: log_cdf_max(y, mean, stddev))(w))
    return lower + jnp.sum((survival[1:] + survival[:-1]) / 2 * jnp.diff(w))


def maxima_floor(model: SurrogateModel) -> Float[Array, "m"]:
    """Lower bound on sampled maxima: the largest observation plus five noise standard deviations."""
    return jnp.max(model.y) + 5 * jnp.sqrt(model.hypers.noise_variance)


def sample_gumbel_maxima(
    key: KeyArray,
    model: SurrogateModel,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    k: int,
    n_grid: int,
) -> Float[Array, "m k"]:
    """Samples `k` maxima of $f$ per hyperparameter sample."""
    key_grid, key_sample = jr.split(key)
    mean, stddev = grid_moments(key_grid, model, xmin, xmax, n_grid)
    keys = jr.split(key_sample, mean.shape[0])
    maxima = vmap(lambda key, mu, s: gumbel_maxima(key, mu, s, k))(keys, mean, stddev)
    return jnp.maximum(maxima, maxima_floor(model)[:, None])


@partial(jit, static_argnames=("n_candidates", "num_iters"))
def maximize_feature_samples(
    key: KeyArray,
    samples: FeatureSample,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    seeds: Float[Array, "s d"],
    n_candidates: int = 1_000,
    num_iters: int = 100,
) -> Tuple[Float[Array, "k d"], Float[Array, "k"]]:
    """Maximizes a batch of random-feature function samples over the box. Returns maximizers and maxima."""
    k = samples.b.shape[0]
    optimizer = optax.adam(learning_rate=1e-2 * jnp.max(xmax - xmin))

    def engine(key: KeyArray, sample: FeatureSample):
        candidates = jnp.concatenate(
            (seeds, rand_sample_interval(key, xmin, xmax, n_candidates)), axis=0
        )
        values = sample.features(candidates) @ sample.theta
        x0 = candidates[jnp.argmax(values)]

        def step(i, carry):
            x, opt_state = carry
            updates, opt_state = optimizer.update(-grad(sample)(x), opt_state, x)
            return jnp.clip(optax.apply_updates(x, updates), xmin, xmax), opt_state

        x = lax.fori_loop(0, num_iters, step, (x0, optimizer.init(x0)))[0]
        value = sample(x)
        improved = value > jnp.max(values)
        return jnp.where(improved, x, x0), jnp.maximum(value, jnp.max(values))

    return vmap(engine)(jr.split(key, k), samples)


def sample_maximizers(
    key: KeyArray,
    model: SurrogateModel,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    k: int,
    n_features: int,
) -> Tuple[Float[Array, "m k d"], Float[Array, "m k"]]:
    """
    Samples `k` pairs of maximizer and maximum per hyperparameter sample by maximizing random-feature posterior samples.
    Maxima are floored by `maxima_floor`.
    """
    hypers = model.hypers
    X_star, y_star = [], []
    for j in range(hypers.n):
        key, key_features, key_maximize = jr.split(key, 3)
        l, s, s0 = hypers.sample(j)
        samples = vmap(
            lambda key: sample_posterior_function(key, model.X, model.y, l, s, s0, n_features)
        )(jr.split(key_features, k))
        x, y = maximize_feature_samples(key_maximize, samples, xmin, xmax, model.X)
        X_star.append(x)
        y_star.append(y)
    y_star = jnp.maximum(jnp.stack(y_star), maxima_floor(model)[:, None])
    return jnp.stack(X_star), y_star


@jit
def _condition(
    X: Float[Array, "n d"],
    y: Float[Array, "n"],
    lengthscale: Float[Array, "d"],
    signal_variance: ScalarFloat,
    noise_variance: ScalarFloat,
    x_new: Float[Array, "d"],
    y_new: ScalarFloat,
    noise_new: ScalarFloat,
) -> Tuple[Float[Array, "n+1 d"], Float[Array, "n+1 n+1"], Float[Array, "n+1"]]:
    X_aug = jnp.concatenate((X, x_new.reshape(1, -1)), axis=0)
    noise = jnp.concatenate((jnp.full(X.shape[0], noise_variance), noise_new.reshape(1)))
    K = Gaussian(variance=signal_variance, lengthscale=lengthscale).covariance(
        X_aug
    ) + jnp.diag(noise + signal_variance * JITTER)
    L = jnp.linalg.cholesky(K)
    L_inv = jnp.linalg.solve(L, jnp.eye(K.shape[0]))
    K_inv = L_inv.T @ L_inv
    return X_aug, K_inv, K_inv @ jnp.concatenate((y, y_new.reshape(1)))


def condition_on_points(
    model: SurrogateModel,
    X_new: Float[Array, "m k d"],
    y_new: Float[Array, "m k"],
    noise_new: Float[Array, "m k"],
) -> Tuple[Float[Array, "m k n+1 d"], Float[Array, "m k n+1 n+1"], Float[Array, "m k n+1"]]:
    """
    For every hyperparameter sample $j$ and every $k$, augments the observations by a pseudo-observation `y_new[j, k]` at `X_new[j, k]` with noise variance `noise_new[j, k]`.

    Returns augmented inputs, inverse Gram matrices and weights.
    """
    hypers = model.hypers

    def engine(l, s, s0, X_k, y_k, noise_k):
        return vmap(
            lambda x, y, noise: _condition(model.X, model.y, l, s, s0, x, y, noise)
        )(X_k, y_k, noise_k)

    X_aug, K_inv, alpha = vmap(engine)(
        hypers.lengthscale,
        hypers.signal_variance,
        hypers.noise_variance,
        X_new,
        y_new,
        noise_new,
    )
    if not bool(jnp.all(jnp.isfinite(K_inv))):
        raise NotPositiveDefiniteError(
            "Gram matrix augmented by a sampled optimum is not positive definite"
        )
    return X_aug, K_inv, alpha


def augmented_mean_var(
    x: Float[Array, "d"],
    lengthscale: Float[Array, "d"],
    signal_variance: ScalarFloat,
    X_aug: Float[Array, "n d"],
    K_inv: Float[Array, "n n"],
    alpha: Float[Array, "n"],
) -> Tuple[ScalarFloat, ScalarFloat, Float[Array, "n"]]:
    """Posterior mean, variance and cross-covariance vector at `x` given augmented observations."""
    k = Gaussian(variance=signal_variance, lengthscale=lengthscale).cross_covariance(
        x.reshape(1, -1), X_aug
    )[0]
    variance = signal_variance - k @ K_inv @ k
    return k @ alpha, jnp.maximum(variance, 1e-10 * signal_variance), k
