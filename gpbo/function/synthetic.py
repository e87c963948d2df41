from typing import Callable
import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, Float
from gpbo.function import Function
from gpbo.typing import KeyArray, ScalarFloat


class SyntheticFunction(Function):
    def __init__(
        self,
        key: KeyArray,
        f: Callable[[Float[Array, "d"]], ScalarFloat],
        xmin: Float[Array, "d"],
        xmax: Float[Array, "d"],
        noise_std: float = 0.0,
        maximum: float | None = None,
    ):
        r"""
        :param key: Randomization key.
        :param f: Function returning noiseless evaluations of $f \;\colon \mathcal{X} \to \mathbb{R}$.
        :param xmin: Lower bounds of the domain.
        :param xmax: Upper bounds of the domain.
        :param noise_std: Standard deviation of the Gaussian observation noise.
        :param maximum: Known maximum of $f$, if any.
        """
        self._key = key
        self._f = f
        self.xmin = jnp.asarray(xmin, dtype=float)
        self.xmax = jnp.asarray(xmax, dtype=float)
        self.noise_std = noise_std
        self.maximum = maximum

    def acquire_key(self) -> KeyArray:
        self._key, key = jr.split(self._key)
        return key

    def evaluate(self, x: Float[Array, "d"]) -> ScalarFloat:
        r"""Evaluates $f$ at `x`."""
        return self._f(x)

    def __call__(self, x: Float[Array, "d"]) -> ScalarFloat:
        noise = self.noise_std * jr.normal(self.acquire_key(), dtype=float)
        return self.evaluate(x) + noise

    def regret(self, x: Float[Array, "d"]) -> ScalarFloat:
        """Simple regret of reporting `x` as the maximizer."""
        assert self.maximum is not None
        return self.maximum - self.evaluate(x)


def _branin(x: Float[Array, "2"]) -> ScalarFloat:
    a, b, c = 1.0, 5.1 / (4 * jnp.pi**2), 5 / jnp.pi
    r, s, t = 6.0, 10.0, 1 / (8 * jnp.pi)
    return -(
        a * jnp.square(x[1] - b * x[0] ** 2 + c * x[0] - r)
        + s * (1 - t) * jnp.cos(x[0])
        + s
    )


def branin(key: KeyArray, noise_std: float = 0.0) -> SyntheticFunction:
    """Negated Branin function on $[-5, 10] \\times [0, 15]$ with three global maximizers."""
    return SyntheticFunction(
        key,
        _branin,
        xmin=jnp.array([-5.0, 0.0]),
        xmax=jnp.array([10.0, 15.0]),
        noise_std=noise_std,
        maximum=-0.397887,
    )


HARTMANN_ALPHA = jnp.array([1.0, 1.2, 3.0, 3.2])
HARTMANN3_A = jnp.array(
    [[3.0, 10, 30], [0.1, 10, 35], [3.0, 10, 30], [0.1, 10, 35]]
)
HARTMANN3_P = 1e-4 * jnp.array(
    [[3689, 1170, 2673], [4699, 4387, 7470], [1091, 8732, 5547], [381, 5743, 8828]]
)


def _hartmann3(x: Float[Array, "3"]) -> ScalarFloat:
    inner = jnp.sum(HARTMANN3_A * jnp.square(x - HARTMANN3_P), axis=1)
    return jnp.sum(HARTMANN_ALPHA * jnp.exp(-inner))


def hartmann3(key: KeyArray, noise_std: float = 0.0) -> SyntheticFunction:
    """Hartmann function on $[0, 1]^3$."""
    return SyntheticFunction(
        key,
        _hartmann3,
        xmin=jnp.zeros(3),
        xmax=jnp.ones(3),
        noise_std=noise_std,
        maximum=3.86278,
    )


def _sphere(x: Float[Array, "d"]) -> ScalarFloat:
    return -jnp.sum(jnp.square(x - 0.5))


def sphere(key: KeyArray, d: int, noise_std: float = 0.0) -> SyntheticFunction:
    """Negated squared distance to the center of $[0, 1]^d$."""
    return SyntheticFunction(
        key,
        _sphere,
        xmin=jnp.zeros(d),
        xmax=jnp.ones(d),
        noise_std=noise_std,
        maximum=0.0,
    )


FUNCTIONS = {"branin": branin, "hartmann3": hartmann3}
"""Benchmark functions with fixed dimension."""
