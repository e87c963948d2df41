from typing import NotRequired
import jax.numpy as jnp
from jaxtyping import Array, Float
from gpbo.gp.kernels.base import Parameterized, Parameters
from gpbo.typing import ScalarFloat


class StationaryParameters(Parameters):
    variance: NotRequired[ScalarFloat]
    lengthscale: NotRequired[Float[Array, "d"] | ScalarFloat]


class Stationary(Parameterized[StationaryParameters]):
    """
    Stationary kernel with one length-scale per input dimension (automatic relevance determination).
    A scalar length-scale is shared across dimensions.
    """

    default_params: StationaryParameters = {
        "variance": 1.0,
        "lengthscale": 1.0,
    }

    def scaled_distance(
        self, x: Float[Array, "d"], y: Float[Array, "d"]
    ) -> ScalarFloat:
        return jnp.sum(jnp.square((x - y) / self.params["lengthscale"]))


class Gaussian(Stationary):
    def __call__(self, x: Float[Array, "d"], y: Float[Array, "d"]) -> ScalarFloat:
        return self.params["variance"] * jnp.exp(-0.5 * self.scaled_distance(x, y))
