import jax.numpy as jnp
import jax.scipy.stats as jstats
from jax import vmap
from jaxtyping import Array, Float
from gpbo.algorithms import Acquisition
from gpbo.algorithms.sampling import expected_maximum, grid_moments
from gpbo.typing import KeyArray, ScalarFloat


class EI(Acquisition):
    """Expected improvement over the largest observation, averaged over hyperparameter samples."""

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        mean, variance = self.model.mean_var(x)
        stddev = jnp.sqrt(variance)
        gamma = (mean - jnp.max(self.model.y)) / stddev
        return jnp.mean(
            stddev * (gamma * jstats.norm.cdf(gamma) + jstats.norm.pdf(gamma))
        )


class PI(Acquisition):
    """Probability of improvement over the largest observation, averaged over hyperparameter samples."""

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        mean, variance = self.model.mean_var(x)
        gamma = (mean - jnp.max(self.model.y)) / jnp.sqrt(variance)
        return jnp.mean(jstats.norm.cdf(gamma))


class UCB(Acquisition):
    r"""GP-UCB $\alpha \mu(\mathbf{x}) + \beta \sigma(\mathbf{x})$, averaged over hyperparameter samples."""

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        mean, variance = self.model.mean_var(x)
        return jnp.mean(
            self.tuning.alpha * mean + self.tuning.beta * jnp.sqrt(variance)
        )


class EST(Acquisition):
    r"""
    **Estimation strategy (EST)**

    Estimates the maximum $\hat{m}$ of $f$ and chooses the point most likely to attain it, $\argmin_{\mathbf{x}} (\hat{m} - \mu(\mathbf{x})) / \sigma(\mathbf{x})$.
    """

    m_hat: Float[Array, "m"]
    """Estimated maximum per hyperparameter sample."""

    def prepare(self, key: KeyArray):
        mean, stddev = grid_moments(
            key, self.model, self.xmin, self.xmax, self.tuning.n_grid
        )
        self.m_hat = vmap(expected_maximum)(mean, stddev)

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        mean, variance = self.model.mean_var(x)
        return jnp.mean((mean - self.m_hat) / jnp.sqrt(variance))
