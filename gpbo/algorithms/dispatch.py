import math
import jax.numpy as jnp
from typing import Dict, Tuple, Type
from jaxtyping import Array, Float
from gpbo.algorithms import Acquisition, Tuning
from gpbo.algorithms.baselines import EI, EST, PI, UCB
from gpbo.algorithms.entropy_search import JES, PES
from gpbo.algorithms.fitbo import FITBO
from gpbo.algorithms.mes import MES, MESR
from gpbo.config import BOConfig
from gpbo.errors import UnknownAcquisitionError
from gpbo.model import SurrogateModel
from gpbo.optimize import Optimizer, global_minimize
from gpbo.typing import KeyArray, ScalarFloat

ACQUISITIONS: Dict[str, Type[Acquisition]] = {
    "JES": JES,
    "MES-R": MESR,
    "MES": MES,
    "PES": PES,
    "FITBO": FITBO,
    "EI": EI,
    "PI": PI,
    "UCB": UCB,
    "EST": EST,
}
"""Acquisition strategies by name."""

UCB_DELTA = 0.01
"""Confidence level of the GP-UCB schedule."""


def validate_method(name: str) -> Type[Acquisition]:
    """Returns the acquisition strategy named `name`. Raises `UnknownAcquisitionError` if there is none."""
    try:
        return ACQUISITIONS[name]
    except KeyError:
        raise UnknownAcquisitionError(name) from None


def ucb_beta(t: int, xmin: Float[Array, "d"], xmax: Float[Array, "d"]) -> float:
    r"""
    Confidence scaling of GP-UCB for continuous domains at iteration `t`:

    $$\beta_t = \sqrt{2 \log(t^2 2 \pi^2 / (3 \delta)) + 2 d \log(t^2 d b r \sqrt{\log(4 d a / \delta)})}$$

    with $a = b = 1$ and $r$ the largest side length of the box.
    On small boxes the radicand can be negative, in which case $\beta_t = 0$.
    """
    d = xmin.shape[0]
    r = float(jnp.max(xmax - xmin))
    if r <= 0:
        return 0.0
    radicand = 2 * math.log(t**2 * 2 * math.pi**2 / (3 * UCB_DELTA)) + 2 * d * math.log(
        t**2 * d * r * math.sqrt(math.log(4 * d / UCB_DELTA))
    )
    return math.sqrt(max(radicand, 0.0))


def make_tuning(
    method: str,
    t: int,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    config: BOConfig,
) -> Tuning:
    """Collects the method-specific parameters for iteration `t`."""
    tuning = Tuning(
        t=t, nK=config.nK, nFeatures=config.nFeatures, epsilon=config.epsilon
    )
    if method == "UCB":
        tuning = tuning.replace(alpha=1.0, beta=ucb_beta(t, xmin, xmax))
    return tuning


def choose(
    method: str,
    model: SurrogateModel,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    guesses: Float[Array, "k d"],
    t: int,
    config: BOConfig,
    key: KeyArray,
    optimizer: Optimizer = global_minimize,
) -> Tuple[Float[Array, "d"], ScalarFloat]:
    """
    Proposes the next point to evaluate with the acquisition strategy named `method`.

    Returns the candidate and its acquisition value.
    """
    Alg = validate_method(method)
    alg = Alg(
        model=model,
        xmin=xmin,
        xmax=xmax,
        tuning=make_tuning(method, t, xmin, xmax, config),
        optimizer=optimizer,
    )
    return alg.choose(key, guesses)
