from chex import dataclass
from jaxtyping import Array, Float
from gpbo.errors import UnknownAcquisitionError
from gpbo.typing import Objective

METHODS = ("JES", "MES-R", "MES", "PES", "FITBO", "EI", "PI", "UCB", "EST")
"""Names of the available acquisition strategies."""


@dataclass(frozen=True)
class BOConfig:
    """Run parameters of a Bayesian optimization run. Immutable once constructed."""

    bo_method: str = "JES"
    """Name of the acquisition strategy, one of `METHODS`."""
    nM: int = 10
    """Number of sampled hyperparameter settings."""
    nK: int = 10
    """Number of sampled maxima (or maximizers) per hyperparameter setting."""
    epsilon: float = 0.1
    """Probability of evaluating the maximizer of the posterior mean instead of the acquisition's choice."""
    nFeatures: int = 1000
    """Number of random features used to sample posterior functions."""
    seed: int = 42
    learn_interval: int = 10
    """Hyperparameters are resampled whenever the iteration index is divisible by `learn_interval`."""
    normalize: bool = False
    """If `True`, the surrogate models standardized observations."""
    n_init: int = 1
    """Number of random initial points drawn if no initial design is given."""
    infer_objective: Objective | None = None
    """Function evaluated at every inferred argmax after the run. Defaults to the objective."""
    lengthscale: Float[Array, "d"] | None = None
    """Fixed length-scales. If all fixed hyperparameters are given, no sampling takes place."""
    signal_variance: float | None = None
    noise_variance: float | None = None
    n_burnin: int = 50
    """Burn-in sweeps of the hyperparameter slice sampler."""
    n_thin: int = 5
    """Slice sampler sweeps between two retained hyperparameter samples."""
    verbose: bool = True
    log_wandb: bool = False
    """If `True`, every iteration is logged to the active `wandb` run."""

    @property
    def fixed_hypers(self) -> bool:
        return (
            self.lengthscale is not None
            and self.signal_variance is not None
            and self.noise_variance is not None
        )

    def validate(self):
        """Raises if the configuration cannot describe a valid run."""
        if self.bo_method not in METHODS:
            raise UnknownAcquisitionError(self.bo_method)
        for name in ("nM", "nK", "nFeatures", "learn_interval", "n_init"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0 <= self.epsilon <= 1:
            raise ValueError(f"epsilon must lie in [0, 1], got {self.epsilon}")
        if self.n_thin < 1 or self.n_burnin < 0:
            raise ValueError("n_thin must be positive and n_burnin non-negative")

