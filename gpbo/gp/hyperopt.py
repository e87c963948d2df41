from typing import Callable, List, Tuple
from warnings import warn
from chex import dataclass
import jax.numpy as jnp
import jax.random as jr
from jax import jit, value_and_grad
from jaxtyping import Array, Float
import optax
from tqdm import tqdm

from gpbo.config import BOConfig
from gpbo.gp.gaussian_distribution import GaussianDistribution
from gpbo.gp.gram import compute_gram
from gpbo.typing import KeyArray, ScalarFloat

LOG_BOUND = 10.0
"""Log-hyperparameters are restricted to `[-LOG_BOUND, LOG_BOUND]`."""


@dataclass(frozen=True)
class Hyperparameters:
    """A set of `n` hyperparameter samples of the squared exponential kernel."""

    lengthscale: Float[Array, "n d"]
    signal_variance: Float[Array, "n"]
    noise_variance: Float[Array, "n"]

    @property
    def n(self) -> int:
        return self.signal_variance.shape[0]

    def sample(self, j: int) -> Tuple[Float[Array, "d"], ScalarFloat, ScalarFloat]:
        """Hyperparameters of the `j`-th sample."""
        return self.lengthscale[j], self.signal_variance[j], self.noise_variance[j]


HyperSampler = Callable[
    [KeyArray, Float[Array, "n d"], Float[Array, "n"], int, BOConfig], Hyperparameters
]
"""Given observations, returns a given number of hyperparameter samples."""


def unpack(theta: Float[Array, "d+2"]) -> Tuple[Float[Array, "d"], ScalarFloat, ScalarFloat]:
    """Maps log-hyperparameters `[log l_1, ..., log l_d, log s, log s0]` to `(l, s, s0)`."""
    params = jnp.exp(theta)
    return params[:-2], params[-2], params[-1]


def prior_location(
    X: Float[Array, "n d"], y: Float[Array, "n"]
) -> Float[Array, "d+2"]:
    """Centers of the log-normal hyperparameter priors, scaled to the observed data."""
    n = X.shape[0]
    x_range = jnp.ptp(X, axis=0) if n > 1 else jnp.ones(X.shape[1])
    x_range = jnp.where(x_range > 0, x_range, 1.0)
    y_scale = jnp.maximum(jnp.var(y), 1e-6) if n > 1 else jnp.array(1.0)
    return jnp.concatenate(
        [jnp.log(0.3 * x_range), jnp.log(jnp.array([y_scale, 1e-3 * y_scale]))]
    )


PRIOR_STDDEV = jnp.array([1.0, 1.0, 2.0])
"""Standard deviations of the log-normal priors of length-scales, signal variance and noise variance."""


@jit
def log_prior(theta: Float[Array, "d+2"], loc: Float[Array, "d+2"]) -> ScalarFloat:
    d = theta.shape[0] - 2
    scale = jnp.concatenate([jnp.full(d, PRIOR_STDDEV[0]), PRIOR_STDDEV[1:]])
    return -0.5 * jnp.sum(jnp.square((theta - loc) / scale))


@jit
def negative_log_likelihood(
    theta: Float[Array, "d+2"], X: Float[Array, "n d"], y: Float[Array, "n"]
) -> ScalarFloat:
    """Negative log marginal likelihood of `y` under the zero-mean GP with log-hyperparameters `theta`."""
    lengthscale, signal_variance, noise_variance = unpack(theta)
    K = compute_gram(X, lengthscale, signal_variance, noise_variance)
    return -GaussianDistribution(mean=jnp.zeros(X.shape[0]), covariance=K).log_prob(y)


@jit
def log_posterior(
    theta: Float[Array, "d+2"],
    X: Float[Array, "n d"],
    y: Float[Array, "n"],
    loc: Float[Array, "d+2"],
) -> ScalarFloat:
    """Unnormalized log posterior density of `theta`. Is $-\\infty$ outside of the admissible box."""
    value = log_prior(theta, loc) - negative_log_likelihood(theta, X, y)
    value = jnp.where(jnp.isfinite(value), value, -jnp.inf)
    return jnp.where(jnp.all(jnp.abs(theta) <= LOG_BOUND), value, -jnp.inf)


def optimize_theta(
    theta: Float[Array, "d+2"],
    X: Float[Array, "n d"],
    y: Float[Array, "n"],
    optimizer: optax.GradientTransformation,
    num_iters=100,
    tol=1e-3,
    progress=False,
) -> Tuple[Float[Array, "d+2"], List[ScalarFloat]]:
    """
    Minimizes the negative log posterior to improve upon the initial log-hyperparameters `theta`.
    """
    loc = prior_location(X, y)
    opt_state = optimizer.init(theta)

    @jit
    def step(theta, opt_state):
        loss, grads = value_and_grad(
            lambda theta: -log_prior(theta, loc) + negative_log_likelihood(theta, X, y)
        )(theta)
        updates, opt_state = optimizer.update(grads, opt_state, theta)
        theta = jnp.clip(optax.apply_updates(theta, updates), -LOG_BOUND, LOG_BOUND)
        return theta, opt_state, loss

    losses = []
    pbar = tqdm(range(num_iters), disable=not progress)
    for i in pbar:
        next_theta, opt_state, loss = step(theta, opt_state)
        if not jnp.isfinite(loss) or not jnp.all(jnp.isfinite(next_theta)):
            break
        theta = next_theta
        losses.append(loss)
        pbar.set_description(f"{loss}")
        if i % 50 == 0 and i > 0 and loss + tol > losses[-50]:
            break

    return theta, losses


def _slice_coordinate(
    key: KeyArray,
    theta: Float[Array, "d+2"],
    i: int,
    log_density: Callable[[Float[Array, "d+2"]], float],
    width: float,
    max_steps: int,
) -> Float[Array, "d+2"]:
    """Single univariate slice sampling update (stepping out, then shrinkage) of coordinate `i`."""
    key_level, key_offset, key_shrink = jr.split(key, 3)
    log_level = log_density(theta) - float(jr.exponential(key_level))
    x0 = float(theta[i])

    def at(x: float) -> float:
        return log_density(theta.at[i].set(x))

    lower = x0 - width * float(jr.uniform(key_offset))
    upper = lower + width
    for _ in range(max_steps):
        if at(lower) <= log_level:
            break
        lower -= width
    for _ in range(max_steps):
        if at(upper) <= log_level:
            break
        upper += width

    for _ in range(max_steps * 10):
        key_shrink, subkey = jr.split(key_shrink)
        x = lower + (upper - lower) * float(jr.uniform(subkey))
        if at(x) > log_level:
            return theta.at[i].set(x)
        if x < x0:
            lower = x
        else:
            upper = x
    warn(f"Slice sampler did not find an acceptable value for coordinate {i}.")
    return theta


def slice_sample(
    key: KeyArray,
    theta: Float[Array, "d+2"],
    log_density: Callable[[Float[Array, "d+2"]], float],
    n_samples: int,
    n_burnin: int,
    n_thin: int,
    width: float = 1.0,
    max_steps: int = 20,
) -> Float[Array, "n_samples d+2"]:
    """
    Draws `n_samples` states of a coordinate-wise slice sampling chain started at `theta`.

    The first `n_burnin` sweeps are discarded and `n_thin` sweeps separate two retained states.
    """
    samples = []
    for sweep in range(n_burnin + n_samples * n_thin):
        for i in range(theta.shape[0]):
            key, subkey = jr.split(key)
            theta = _slice_coordinate(subkey, theta, i, log_density, width, max_steps)
        if sweep >= n_burnin and (sweep - n_burnin + 1) % n_thin == 0:
            samples.append(theta)
    return jnp.stack(samples)


def sample_hypers(
    key: KeyArray,
    X: Float[Array, "n d"],
    y: Float[Array, "n"],
    nM: int,
    config: BOConfig,
) -> Hyperparameters:
    r"""
    Returns `nM` hyperparameter samples given the observations `X`, `y`.

    If `config` fixes all hyperparameters, they are replicated `nM` times.
    Otherwise, the chain is started at a MAP estimate and samples are drawn from the posterior $p(\theta \mid \mathcal{D})$ via slice sampling.
    """
    d = X.shape[1]
    if config.fixed_hypers:
        lengthscale = jnp.broadcast_to(
            jnp.asarray(config.lengthscale, dtype=float), (d,)
        )
        return Hyperparameters(
            lengthscale=jnp.tile(lengthscale, (nM, 1)),
            signal_variance=jnp.full(nM, config.signal_variance, dtype=float),
            noise_variance=jnp.full(nM, config.noise_variance, dtype=float),
        )

    loc = prior_location(X, y)
    theta, _ = optimize_theta(loc, X, y, optimizer=optax.adam(learning_rate=0.05))
    thetas = slice_sample(
        key,
        theta,
        log_density=lambda theta: float(log_posterior(theta, X, y, loc)),
        n_samples=nM,
        n_burnin=config.n_burnin,
        n_thin=config.n_thin,
    )
    params = jnp.exp(thetas)
    return Hyperparameters(
        lengthscale=params[:, :d],
        signal_variance=params[:, d],
        noise_variance=params[:, d + 1],
    )
