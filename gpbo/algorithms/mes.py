from abc import abstractmethod
from jax import jit, vmap
import jax.numpy as jnp
import jax.scipy.stats as jstats
from jaxtyping import Array, Float
from gpbo.algorithms import Acquisition
from gpbo.algorithms.sampling import sample_gumbel_maxima, sample_maximizers
from gpbo.typing import KeyArray, ScalarFloat


@jit
def _mes(
    mean: Float[Array, "m"],
    stddev: Float[Array, "m"],
    optima: Float[Array, "m k"],
) -> ScalarFloat:
    def engine(opt: Float[Array, "m"]) -> Float[Array, "m"]:
        gamma = (opt - mean) / stddev
        return gamma * jstats.norm.pdf(gamma) / (
            2 * jstats.norm.cdf(gamma)
        ) - jstats.norm.logcdf(gamma)

    return jnp.mean(vmap(engine, in_axes=1)(optima))


class MaxValueEntropySearch(Acquisition):
    r"""Max-value Entropy Search. Choosing $\mathbf{x}$ based on $\argmax_{\mathbf{x}}\ I(y^\star; y(\mathbf{x}) \mid \mathcal{D}_n).$"""

    optima: Float[Array, "m k"]
    """Sampled maxima per hyperparameter sample."""

    @abstractmethod
    def sample_optima(self, key: KeyArray) -> Float[Array, "m k"]:
        pass

    def prepare(self, key: KeyArray):
        self.optima = self.sample_optima(key)

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        mean, variance = self.model.mean_var(x)
        return _mes(mean=mean, stddev=jnp.sqrt(variance), optima=self.optima)


class MES(MaxValueEntropySearch):
    """Max-value entropy search with maxima sampled from a Gumbel approximation of the distribution of the maximum."""

    def sample_optima(self, key: KeyArray) -> Float[Array, "m k"]:
        return sample_gumbel_maxima(
            key,
            self.model,
            self.xmin,
            self.xmax,
            k=self.tuning.nK,
            n_grid=self.tuning.n_grid,
        )


class MESR(MaxValueEntropySearch):
    """Max-value entropy search with maxima of posterior function samples drawn with random features."""

    def sample_optima(self, key: KeyArray) -> Float[Array, "m k"]:
        _, optima = sample_maximizers(
            key,
            self.model,
            self.xmin,
            self.xmax,
            k=self.tuning.nK,
            n_features=self.tuning.nFeatures,
        )
        return optima
