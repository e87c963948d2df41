from abc import ABC, abstractmethod
from jaxtyping import Array, Float
from gpbo.typing import ScalarFloat


class Function(ABC):
    r"""Wrapper around the unknown objective $f \colon \mathcal{X} \to \mathbb{R}$."""

    @abstractmethod
    def __call__(self, x: Float[Array, "d"]) -> ScalarFloat:
        r"""(Noisy) observation of $f$ at `x`."""
        pass
