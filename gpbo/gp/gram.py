from jax import jit
import jax.numpy as jnp
from jaxtyping import Array, Float
from gpbo.errors import NotPositiveDefiniteError
from gpbo.gp.kernels.stationary import Gaussian
from gpbo.typing import ScalarFloat

JITTER = 1e-10
"""Relative jitter added to the diagonal of every Gram matrix."""


@jit
def compute_gram(
    X: Float[Array, "n d"],
    lengthscale: Float[Array, "d"],
    signal_variance: ScalarFloat,
    noise_variance: ScalarFloat,
) -> Float[Array, "n n"]:
    r"""
    Gram matrix $\mathbf{K}(\mathbf{X}, \mathbf{X}) + (\sigma_0^2 + 10^{-10} \sigma^2) \mathbf{I}$ of the noisy observations at `X`.
    """
    n = X.shape[0]
    kernel = Gaussian(variance=signal_variance, lengthscale=lengthscale)
    return kernel.covariance(X) + jnp.eye(n) * (
        noise_variance + signal_variance * JITTER
    )


@jit
def _cholesky_inverse(
    K: Float[Array, "n n"]
) -> tuple[Float[Array, "n n"], Float[Array, "n n"]]:
    L = jnp.linalg.cholesky(K)
    L_inv = jnp.linalg.solve(L, jnp.eye(K.shape[0]))
    return L_inv.T @ L_inv, L


def chol_inverse(K: Float[Array, "n n"]) -> Float[Array, "n n"]:
    """
    Inverts the positive definite matrix `K` through its Cholesky factor.

    Raises `NotPositiveDefiniteError` if the factorization fails.
    """
    K_inv, L = _cholesky_inverse(K)
    if not bool(jnp.all(jnp.isfinite(L))):
        raise NotPositiveDefiniteError(
            f"Gram matrix of size {K.shape[0]} is not positive definite"
        )
    return K_inv


def gram_inverse(
    X: Float[Array, "n d"],
    lengthscale: Float[Array, "d"],
    signal_variance: ScalarFloat,
    noise_variance: ScalarFloat,
) -> Float[Array, "n n"]:
    """Inverse of the Gram matrix of `X` under one hyperparameter setting."""
    return chol_inverse(compute_gram(X, lengthscale, signal_variance, noise_variance))
