from __future__ import annotations
from typing import Tuple
from chex import dataclass
from jaxtyping import Array, Float
from jax import jit
import jax.numpy as jnp
import jax.scipy.stats as jstats
from gpbo.typing import ScalarFloat
from gpbo.utils import solve_linear_system


@dataclass
class GaussianDistribution:
    r"""
    **Multivariate Gaussian** $\mathcal{N}(\boldsymbol{\mu}; \boldsymbol{\Sigma})$ with dimension $n$.
    """

    mean: Float[Array, "n"]
    """Mean vector."""
    covariance: Float[Array, "n n"]
    """Covariance matrix."""

    @property
    def n(self) -> int:
        """Dimension."""
        return self.mean.shape[0]

    @jit
    def log_prob(self, y: Float[Array, "n"]) -> ScalarFloat:
        """Log probability of observation `y`."""
        delta = y - self.mean
        alpha, L = solve_linear_system(self.covariance, delta)
        return -(
            0.5 * delta.T @ alpha
            + jnp.sum(jnp.log(jnp.diag(L)))
            + 0.5 * self.n * jnp.log(2 * jnp.pi)
        )


def inverse_mills_ratio(z: Float[Array, "..."]) -> Float[Array, "..."]:
    r"""$\phi(z) / \Phi(z)$, computed in log space."""
    return jnp.exp(jstats.norm.logpdf(z) - jstats.norm.logcdf(z))


def truncated_above(
    mean: Float[Array, "..."], variance: Float[Array, "..."], bound: Float[Array, "..."]
) -> Tuple[Float[Array, "..."], Float[Array, "..."]]:
    """Mean and variance of $\\mathcal{N}(\\mu, \\sigma^2)$ conditioned on being at most `bound`."""
    stddev = jnp.sqrt(variance)
    gamma = (bound - mean) / stddev
    lam = inverse_mills_ratio(gamma)
    return mean - stddev * lam, variance * jnp.maximum(1 - gamma * lam - lam**2, 0)


def truncated_below(
    mean: Float[Array, "..."], variance: Float[Array, "..."], bound: Float[Array, "..."]
) -> Tuple[Float[Array, "..."], Float[Array, "..."]]:
    """Mean and variance of $\\mathcal{N}(\\mu, \\sigma^2)$ conditioned on exceeding `bound`."""
    stddev = jnp.sqrt(variance)
    z = (mean - bound) / stddev
    lam = inverse_mills_ratio(z)
    return mean + stddev * lam, variance * jnp.maximum(1 - lam * (lam + z), 0)
