from chex import dataclass
from jax import jit
import jax.numpy as jnp
import jax.random as jr
from jax.scipy.linalg import solve_triangular
from jaxtyping import Array, Float
from gpbo.typing import KeyArray, ScalarFloat


@dataclass(frozen=True)
class FeatureSample:
    r"""
    A function $\tilde{f}(\mathbf{x}) = \boldsymbol{\phi}(\mathbf{x})^\top \boldsymbol{\theta}$ sampled from the (approximate) GP posterior using random Fourier features

    $$\boldsymbol{\phi}(\mathbf{x}) = \sqrt{2 \sigma^2 / m} \cos(\mathbf{W} \mathbf{x} + \mathbf{b}).$$
    """

    W: Float[Array, "m d"]
    b: Float[Array, "m"]
    theta: Float[Array, "m"]
    signal_variance: ScalarFloat

    def features(self, X: Float[Array, "n d"]) -> Float[Array, "n m"]:
        m = self.b.shape[0]
        return jnp.sqrt(2 * self.signal_variance / m) * jnp.cos(X @ self.W.T + self.b)

    def __call__(self, x: Float[Array, "d"]) -> ScalarFloat:
        return self.features(x.reshape(1, -1))[0] @ self.theta


@jit
def _posterior_weights(
    key: KeyArray,
    Phi: Float[Array, "n m"],
    y: Float[Array, "n"],
    noise_variance: ScalarFloat,
) -> Float[Array, "m"]:
    m = Phi.shape[1]
    A = Phi.T @ Phi / noise_variance + jnp.eye(m)
    L = jnp.linalg.cholesky(A)
    mean = solve_triangular(
        L.T, solve_triangular(L, Phi.T @ y / noise_variance, lower=True), lower=False
    )
    z = jr.normal(key, (m,), dtype=Phi.dtype)
    return mean + solve_triangular(L.T, z, lower=False)


def sample_posterior_function(
    key: KeyArray,
    X: Float[Array, "n d"],
    y: Float[Array, "n"],
    lengthscale: Float[Array, "d"],
    signal_variance: ScalarFloat,
    noise_variance: ScalarFloat,
    n_features: int,
) -> FeatureSample:
    """
    Samples a function from the posterior of the squared exponential GP given observations `X`, `y` (Bayesian linear regression on `n_features` random features).
    """
    d = X.shape[1]
    key_W, key_b, key_theta = jr.split(key, 3)
    W = jr.normal(key_W, (n_features, d), dtype=X.dtype) / lengthscale
    b = jr.uniform(key_b, (n_features,), dtype=X.dtype, maxval=2 * jnp.pi)
    sample = FeatureSample(
        W=W, b=b, theta=jnp.zeros(n_features), signal_variance=signal_variance
    )
    theta = _posterior_weights(key_theta, sample.features(X), y, noise_variance)
    return sample.replace(theta=theta)
