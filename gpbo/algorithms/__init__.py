r"""
Implementation of acquisition functions over a continuous box.

* `gpbo.algorithms.baselines` implements expected improvement (EI), probability of improvement (PI), GP-UCB and the estimation strategy (EST).
* `gpbo.algorithms.mes` implements max-value entropy search with max-values sampled from a Gumbel approximation (MES) or from random-feature posterior samples (MES-R).
* `gpbo.algorithms.entropy_search` implements joint entropy search (JES) and predictive entropy search (PES).
* `gpbo.algorithms.fitbo` implements fast information-theoretic Bayesian optimization (FITBO).

* `gpbo.algorithms.dispatch` selects a strategy by name.
"""

from abc import ABC, abstractmethod
from typing import Tuple
from chex import dataclass
import jax.random as jr
from jaxtyping import Array, Float
from gpbo.model import SurrogateModel
from gpbo.optimize import Optimizer, global_maximize, global_minimize
from gpbo.typing import KeyArray, ScalarFloat


@dataclass(frozen=True)
class Tuning:
    """Method-specific parameters of an acquisition function."""

    t: int
    """Iteration index, starting at 1."""
    nK: int = 10
    nFeatures: int = 1000
    epsilon: float = 0.1
    alpha: float = 1.0
    """Weight of the posterior mean in GP-UCB."""
    beta: float = 1.0
    """Weight of the posterior standard deviation in GP-UCB."""
    n_grid: int = 1_000
    """Number of random points used to approximate the distribution of the maximum."""


class Acquisition(ABC):
    """Acquisition function. Scores points by the value of evaluating the objective there next."""

    model: SurrogateModel
    xmin: Float[Array, "d"]
    xmax: Float[Array, "d"]
    tuning: Tuning

    def __init__(
        self,
        model: SurrogateModel,
        xmin: Float[Array, "d"],
        xmax: Float[Array, "d"],
        tuning: Tuning,
        optimizer: Optimizer = global_minimize,
    ):
        self.model = model
        self.xmin = xmin
        self.xmax = xmax
        self.tuning = tuning
        self.optimizer = optimizer

    def prepare(self, key: KeyArray):
        """Draws the random quantities `F` depends upon (e.g., samples of the maximum)."""
        pass

    @abstractmethod
    def F(self, x: Float[Array, "d"]) -> ScalarFloat:
        """Acquisition value at `x`. Must be traceable by `jax`."""
        pass

    def choose(
        self, key: KeyArray, guesses: Float[Array, "k d"]
    ) -> Tuple[Float[Array, "d"], ScalarFloat]:
        """Returns the maximizer of the acquisition function and its value."""
        key_prepare, key_optimize = jr.split(key)
        self.prepare(key_prepare)
        return global_maximize(
            key_optimize,
            self.F,
            self.xmin,
            self.xmax,
            guesses=guesses,
            optimizer=self.optimizer,
        )
