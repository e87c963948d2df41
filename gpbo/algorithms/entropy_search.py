from jax import vmap
import jax.numpy as jnp
from jaxtyping import Array, Float
from gpbo.algorithms import Acquisition
from gpbo.algorithms.sampling import (
    augmented_mean_var,
    condition_on_points,
    sample_maximizers,
)
from gpbo.gp.gaussian_distribution import truncated_above, truncated_below
from gpbo.gp.kernels.stationary import Gaussian
from gpbo.typing import KeyArray, ScalarFloat


class JES(Acquisition):
    r"""
    **Joint Entropy Search (JES)**

    Chooses $\argmax_{\mathbf{x}}\ I((\mathbf{x}^\star, y^\star); y(\mathbf{x}) \mid \mathcal{D}_n)$.
    Pairs $(\mathbf{x}^\star, y^\star)$ are sampled by maximizing random-feature posterior samples.
    For every pair, the GP is conditioned on $f(\mathbf{x}^\star) = y^\star$ and its predictive at $\mathbf{x}$ is truncated above at $y^\star$.
    """

    def prepare(self, key: KeyArray):
        X_star, y_star = sample_maximizers(
            key,
            self.model,
            self.xmin,
            self.xmax,
            k=self.tuning.nK,
            n_features=self.tuning.nFeatures,
        )
        self.y_star = y_star
        self.X_aug, self.K_inv, self.alpha = condition_on_points(
            self.model, X_star, y_star, noise_new=jnp.zeros_like(y_star)
        )

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        hypers = self.model.hypers
        _, variance = self.model.mean_var(x)

        def engine(l, s, s0, variance, X_aug, K_inv, alpha, y_star):
            def conditional(X_aug, K_inv, alpha, y_star):
                mean_k, variance_k, _ = augmented_mean_var(x, l, s, X_aug, K_inv, alpha)
                _, variance_k = truncated_above(mean_k, variance_k, y_star)
                return 0.5 * jnp.log(variance + s0) - 0.5 * jnp.log(variance_k + s0)

            return vmap(conditional)(X_aug, K_inv, alpha, y_star)

        return jnp.mean(
            vmap(engine)(
                hypers.lengthscale,
                hypers.signal_variance,
                hypers.noise_variance,
                variance,
                self.X_aug,
                self.K_inv,
                self.alpha,
                self.y_star,
            )
        )


class PES(Acquisition):
    r"""
    **Predictive Entropy Search (PES)**

    Chooses $\argmax_{\mathbf{x}}\ I(\mathbf{x}^\star; y(\mathbf{x}) \mid \mathcal{D}_n)$.
    Maximizers $\mathbf{x}^\star$ are sampled by maximizing random-feature posterior samples.
    The conditions $f(\mathbf{x}^\star) > \max_i y_i$ and $f(\mathbf{x}) \leq f(\mathbf{x}^\star)$ are incorporated by one step of moment matching each.
    """

    def prepare(self, key: KeyArray):
        X_star, _ = sample_maximizers(
            key,
            self.model,
            self.xmin,
            self.xmax,
            k=self.tuning.nK,
            n_features=self.tuning.nFeatures,
        )
        y_max = jnp.max(self.model.y)

        # site of f(x*) > y_max, as a Gaussian pseudo-observation
        mean, variance = vmap(vmap(self.model.mean_var))(X_star)
        idx = jnp.arange(mean.shape[0])
        mean, variance = mean[idx, :, idx], variance[idx, :, idx]
        mean_t, variance_t = truncated_below(mean, variance, y_max)
        variance_t = jnp.clip(variance_t, 1e-10 * variance, variance * (1 - 1e-6))
        site_variance = 1 / (1 / variance_t - 1 / variance)
        site_mean = site_variance * (mean_t / variance_t - mean / variance)

        self.X_star = X_star
        self.X_aug, self.K_inv, self.alpha = condition_on_points(
            self.model, X_star, site_mean, noise_new=site_variance
        )

    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        hypers = self.model.hypers
        _, variance = self.model.mean_var(x)

        def engine(l, s, s0, variance, X_star, X_aug, K_inv, alpha):
            def conditional(x_star, X_aug, K_inv, alpha):
                mean_x, variance_x, k_x = augmented_mean_var(x, l, s, X_aug, K_inv, alpha)
                mean_s, variance_s, k_s = augmented_mean_var(
                    x_star, l, s, X_aug, K_inv, alpha
                )
                cross = Gaussian(variance=s, lengthscale=l)(x, x_star) - k_x @ K_inv @ k_s
                # f(x) - f(x*) <= 0
                diff_variance = jnp.maximum(
                    variance_x + variance_s - 2 * cross, 1e-10 * s
                )
                _, diff_variance_t = truncated_above(
                    mean_x - mean_s, diff_variance, 0.0
                )
                shrinkage = 1 - diff_variance_t / diff_variance
                variance_c = variance_x - jnp.square(variance_x - cross) / diff_variance * shrinkage
                variance_c = jnp.maximum(variance_c, 1e-10 * s)
                return 0.5 * jnp.log(variance + s0) - 0.5 * jnp.log(variance_c + s0)

            return vmap(conditional)(X_star, X_aug, K_inv, alpha)

        return jnp.mean(
            vmap(engine)(
                hypers.lengthscale,
                hypers.signal_variance,
                hypers.noise_variance,
                variance,
                self.X_star,
                self.X_aug,
                self.K_inv,
                self.alpha,
            )
        )
