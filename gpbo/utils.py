from typing import Tuple
from jax import jit
import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, Float
from gpbo.typing import KeyArray, ScalarFloat


@jit
def solve_linear_system(
    A: Float[Array, "n m"], B: Float[Array, "n k"]
) -> Tuple[Float[Array, "m k"], Float[Array, "m n"]]:
    r"""
    Solves the linear system $\mathbf{A} \mathbf{X} = \mathbf{B}$ for $\mathbf{X} \in \mathbb{R}^{m \times k}$ where $\mathbf{A} \in \mathbb{R}^{n \times m}$ and $\mathbf{B} \in \mathbb{R}^{n \times k}$.
    Assumes that $\mathbf{A}$ is positive definite.

    Returns the solution $\mathbf{X}$ and the Cholesky factor $\mathbf{L}$.

    More stable than `jnp.linalg.solve(A, B)`.
    """
    L = jnp.linalg.cholesky(A)
    X = jnp.linalg.solve(L.T, jnp.linalg.solve(L, B))
    return X, L


def rand_sample_interval(
    key: KeyArray, xmin: Float[Array, "d"], xmax: Float[Array, "d"], n: int
) -> Float[Array, "n d"]:
    """Samples `n` points uniformly at random from the box `[xmin, xmax]`."""
    d = xmin.shape[0]
    return xmin + (xmax - xmin) * jr.uniform(key, (n, d), dtype=xmin.dtype)


def normalize(
    y: Float[Array, "n"]
) -> Tuple[Float[Array, "n"], ScalarFloat, ScalarFloat]:
    """
    Standardizes `y` to zero mean and unit standard deviation.

    Returns the standardized vector together with the shift and scale so that values can be mapped back.
    A constant vector is only shifted.
    """
    mu = jnp.mean(y)
    std = jnp.std(y)
    std = jnp.where(std > 0, std, 1.0)
    return (y - mu) / std, mu, std


def as_bounds(
    xmin: Float[Array, "d"], xmax: Float[Array, "d"]
) -> Tuple[Float[Array, "d"], Float[Array, "d"]]:
    """Validates and converts box bounds to flat float arrays."""
    xmin = jnp.asarray(xmin, dtype=float).reshape(-1)
    xmax = jnp.asarray(xmax, dtype=float).reshape(-1)
    if xmin.shape != xmax.shape:
        raise ValueError(
            f"xmin and xmax must have equal length, got {xmin.shape[0]} and {xmax.shape[0]}"
        )
    if jnp.any(xmin > xmax):
        raise ValueError("xmin must not exceed xmax in any dimension")
    if jnp.all(xmin == xmax):
        raise ValueError("The box [xmin, xmax] must have positive extent")
    return xmin, xmax
