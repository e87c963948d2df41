from jax import vmap
import jax.numpy as jnp
from jaxtyping import Array, Float
from gpbo.algorithms import Acquisition
from gpbo.algorithms.sampling import sample_gumbel_maxima
from gpbo.gp.kernels.stationary import Gaussian
from gpbo.typing import KeyArray, ScalarFloat


class FITBO(Acquisition):
    r"""
    **Fast Information-Theoretic Bayesian Optimization (FITBO)**

    Writes $f(\mathbf{x}) = \eta - \frac{1}{2} g(\mathbf{x})^2$ with a GP prior on $g$ and samples of the maximum $\eta$.
    The predictive of $y(\mathbf{x})$ is a Gaussian mixture over samples $\eta$ whose components follow from linearizing $g \mapsto f$.
    Chooses the point with the largest gap between the entropy of the (moment-matched) mixture and the expected entropy of its components.
    """

    eta: Float[Array, "m k"]
    alpha_g: Float[Array, "m k n"]
    r"""Weights $\mathbf{K}^{-1} \mathbf{g}$ of the transformed observations, per hyperparameter sample and sample of $\eta$."""

    def prepare(self, key: KeyArray):
        self.eta = sample_gumbel_maxima(
            key,
            self.model,
            self.xmin,
            self.xmax,
            k=self.tuning.nK,
            n_grid=self.tuning.n_grid,
        )
        g = jnp.sqrt(2 * jnp.maximum(self.eta[:, :, None] - self.model.y, 0.0))
        self.alpha_g = jnp.einsum("jnm,jkm->jkn", self.model.kernel_matrix_inv, g)

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        hypers = self.model.hypers
        _, variance = self.model.mean_var(x)

        def engine(l, s, s0, variance, eta, alpha_g):
            k = Gaussian(variance=s, lengthscale=l).cross_covariance(
                x.reshape(1, -1), self.model.X
            )[0]
            mean_g = alpha_g @ k
            mean_f = eta - 0.5 * jnp.square(mean_g)
            variance_y = jnp.square(mean_g) * variance + s0
            return mean_f, variance_y

        mean_f, variance_y = vmap(engine)(
            hypers.lengthscale,
            hypers.signal_variance,
            hypers.noise_variance,
            variance,
            self.eta,
            self.alpha_g,
        )
        mixture_mean = jnp.mean(mean_f)
        mixture_variance = jnp.mean(variance_y + jnp.square(mean_f)) - jnp.square(
            mixture_mean
        )
        return 0.5 * jnp.log(mixture_variance) - jnp.mean(0.5 * jnp.log(variance_y))
