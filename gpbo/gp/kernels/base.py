from abc import ABC, abstractmethod
from typing import Generic, TypeVar, TypedDict
from jax import vmap
from jaxtyping import Array, Float

from gpbo.typing import ScalarFloat


class Kernel(ABC):
    @abstractmethod
    def __call__(self, x: Float[Array, "d"], y: Float[Array, "d"]) -> ScalarFloat:
        pass

    def cross_covariance(
        self, X: Float[Array, "n d"], Y: Float[Array, "m d"]
    ) -> Float[Array, "n m"]:
        f_vmap1 = vmap(self, in_axes=(None, 0))
        f_vmap2 = vmap(f_vmap1, in_axes=(0, None))
        return f_vmap2(X, Y)  # type: ignore

    def covariance(self, X: Float[Array, "n d"]) -> Float[Array, "n n"]:
        return self.cross_covariance(X, X)


class Parameters(TypedDict):
    pass


P = TypeVar("P", bound=Parameters)


class Parameterized(Kernel, Generic[P]):
    default_params: P

    def __init__(self, **params):
        self.params = {
            **self.default_params,
            **(params if params is not None else {}),
        }
