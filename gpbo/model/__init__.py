from typing import Callable, Tuple
from jax import grad, jit, vmap
import jax.numpy as jnp
from jaxtyping import Array, Float
from gpbo.errors import StaleCacheError
from gpbo.gp.gram import gram_inverse
from gpbo.gp.hyperopt import Hyperparameters
from gpbo.gp.kernels.stationary import Gaussian
from gpbo.typing import ScalarFloat
from gpbo.utils import normalize

MIN_VARIANCE = 1e-10
"""Posterior variances are floored at `MIN_VARIANCE` times the signal variance."""

GramInverse = Callable[
    [Float[Array, "n d"], Float[Array, "d"], ScalarFloat, ScalarFloat],
    Float[Array, "n n"],
]


@jit
def predict(
    x: Float[Array, "d"],
    X: Float[Array, "n d"],
    lengthscale: Float[Array, "m d"],
    signal_variance: Float[Array, "m"],
    kernel_matrix_inv: Float[Array, "m n n"],
    alpha: Float[Array, "m n"],
) -> Tuple[Float[Array, "m"], Float[Array, "m"]]:
    """Posterior means and (noise-free) variances at `x` under each of the `m` hyperparameter samples."""

    def engine(l, s, K_inv, a):
        k = Gaussian(variance=s, lengthscale=l).cross_covariance(x.reshape(1, -1), X)[0]
        variance = s - k @ K_inv @ k
        return k @ a, jnp.maximum(variance, MIN_VARIANCE * s)

    return vmap(engine)(lengthscale, signal_variance, kernel_matrix_inv, alpha)


class SurrogateModel:
    r"""
    **Gaussian process** surrogate of the objective, averaged over a set of hyperparameter samples.

    Keeps one inverse Gram matrix per hyperparameter sample.
    The cache is invalidated whenever observations or hyperparameters change and must be rebuilt with `rebuild_caches` before any posterior query.
    """

    X: Float[Array, "n d"]
    """Observed points."""
    unnorm_y: Float[Array, "n"]
    """Observed values."""
    y: Float[Array, "n"]
    """Modeled values. Standardized if `normalize` is set."""

    def __init__(
        self,
        X: Float[Array, "n d"],
        y: Float[Array, "n"],
        normalize: bool = False,
        gram_inverse: GramInverse = gram_inverse,
    ):
        self.normalize = normalize
        self._gram_inverse = gram_inverse
        self.X = jnp.asarray(X, dtype=float).reshape(X.shape[0], -1)
        self.unnorm_y = jnp.asarray(y, dtype=float).reshape(-1)
        self._update_y()
        self._hypers: Hyperparameters | None = None
        self._kernel_matrix_inv: Float[Array, "m n n"] | None = None
        self._alpha: Float[Array, "m n"] | None = None
        self._stale = True

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def d(self) -> int:
        return self.X.shape[1]

    @property
    def stale(self) -> bool:
        """Whether the cached inverse Gram matrices lag behind observations or hyperparameters."""
        return self._stale

    @property
    def hypers(self) -> Hyperparameters:
        if self._hypers is None:
            raise StaleCacheError("No hyperparameters have been set.")
        return self._hypers

    @property
    def kernel_matrix_inv(self) -> Float[Array, "m n n"]:
        """Inverse Gram matrices of the observed points, one per hyperparameter sample."""
        self._check_fresh()
        return self._kernel_matrix_inv  # type: ignore

    @property
    def alpha(self) -> Float[Array, "m n"]:
        r"""Weights $\mathbf{K}^{-1} \mathbf{y}$, one per hyperparameter sample."""
        self._check_fresh()
        return self._alpha  # type: ignore

    def _check_fresh(self):
        if self._stale:
            raise StaleCacheError(
                "Inverse Gram matrices are stale. Call `rebuild_caches` first."
            )

    def _update_y(self):
        if self.normalize:
            self.y, self._shift, self._scale = normalize(self.unnorm_y)
        else:
            self.y, self._shift, self._scale = self.unnorm_y, 0.0, 1.0

    def denormalize(self, v: ScalarFloat) -> ScalarFloat:
        """Maps a value on the modeled scale back to the scale of the objective."""
        return v * self._scale + self._shift

    def append(self, x: Float[Array, "d"], y: ScalarFloat):
        """Adds the observation `y` at `x`. Invalidates the cache."""
        self.X = jnp.concatenate((self.X, jnp.reshape(x, (1, -1))), axis=0)
        self.unnorm_y = jnp.concatenate((self.unnorm_y, jnp.reshape(y, (1,))))
        self._update_y()
        self._stale = True

    def set_hypers(self, hypers: Hyperparameters):
        """Replaces the hyperparameter samples. Invalidates the cache."""
        self._hypers = hypers
        self._stale = True

    def rebuild_caches(self):
        """
        Recomputes the inverse Gram matrix for every hyperparameter sample from all observations.
        Propagates `NotPositiveDefiniteError`.
        """
        hypers = self.hypers
        self._kernel_matrix_inv = jnp.stack(
            [self._gram_inverse(self.X, *hypers.sample(j)) for j in range(hypers.n)]
        )
        self._alpha = self._kernel_matrix_inv @ self.y
        self._stale = False

    def mean_var(
        self, x: Float[Array, "d"]
    ) -> Tuple[Float[Array, "m"], Float[Array, "m"]]:
        """Posterior means and variances of $f(\\mathbf{x})$ under every hyperparameter sample."""
        return predict(
            x,
            self.X,
            self.hypers.lengthscale,
            self.hypers.signal_variance,
            self.kernel_matrix_inv,
            self.alpha,
        )

    def mean_j(self, x: Float[Array, "d"], j: int) -> ScalarFloat:
        return self.mean_var(x)[0][j]

    def variance_j(self, x: Float[Array, "d"], j: int) -> ScalarFloat:
        return self.mean_var(x)[1][j]

    def posterior_mean(self, x: Float[Array, "d"]) -> ScalarFloat:
        """Posterior mean at `x`, averaged over hyperparameter samples."""
        return jnp.mean(self.mean_var(x)[0])

    def posterior_mean_gradient(self, x: Float[Array, "d"]) -> Float[Array, "d"]:
        return grad(self.posterior_mean)(x)
