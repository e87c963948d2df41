import time
from typing import Callable, List, Tuple
from chex import dataclass
import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, Float
import numpy as np
import pandas as pd
from tqdm import tqdm
import wandb
from gpbo.algorithms.dispatch import choose
from gpbo.config import BOConfig
from gpbo.gp.gram import gram_inverse
from gpbo.gp.hyperopt import HyperSampler, Hyperparameters, sample_hypers
from gpbo.model import GramInverse, SurrogateModel
from gpbo.optimize import Optimizer, global_minimize
from gpbo.typing import KeyArray, Objective, ScalarFloat
from gpbo.utils import as_bounds, rand_sample_interval

ChooseFn = Callable[..., Tuple[Float[Array, "d"], ScalarFloat]]
"""Acquisition dispatcher with the signature of `gpbo.algorithms.dispatch.choose`."""


@dataclass(frozen=True)
class BOResults:
    """Outcome of a Bayesian optimization run with `n` initial points and `T` iterations."""

    guesses: Float[Array, "n+T d"]
    """Inferred maximizers: the initial points, then one maximizer of the posterior mean per iteration."""
    guess_vals: Float[Array, "n+T"]
    """Posterior mean at each inferred maximizer (observed values for the initial points)."""
    X: Float[Array, "n+T d"]
    """Evaluated points."""
    y: Float[Array, "n+T"]
    """Objective values at the evaluated points."""
    choose_time: Float[Array, "T"]
    """Per iteration, the time to choose and evaluate the next point and to update the surrogate."""
    extra_time: Float[Array, "T"]
    """Per iteration, the time to infer the maximizer of the posterior mean."""
    infer_vals: Float[Array, "n+T"]
    """Inference objective at each inferred maximizer (`nan` if it returns nothing)."""

    def to_dataframe(self) -> pd.DataFrame:
        """One row per evaluated point. Timings of the initial points are `nan`."""
        n = self.X.shape[0]
        T = self.choose_time.shape[0]
        pad = np.full(n - T, np.nan)
        df = pd.DataFrame(
            {
                **{f"x_{i}": np.asarray(self.X[:, i]) for i in range(self.X.shape[1])},
                "y": np.asarray(self.y),
                **{
                    f"guess_{i}": np.asarray(self.guesses[:, i])
                    for i in range(self.guesses.shape[1])
                },
                "guess_val": np.asarray(self.guess_vals),
                "infer_val": np.asarray(self.infer_vals),
                "choose_time": np.concatenate([pad, np.asarray(self.choose_time)]),
                "extra_time": np.concatenate([pad, np.asarray(self.extra_time)]),
            }
        )
        df.index.name = "t"
        return df


class BayesianOptimization:
    r"""
    **Bayesian optimization** maximizing a black-box objective over the box `[xmin, xmax]` with `T` sequential evaluations.

    The objective is modeled by a Gaussian process whose hyperparameters are resampled every `config.learn_interval` iterations.
    In every iteration, the configured acquisition function proposes the next point.
    With probability `config.epsilon`, the proposal is replaced by the maximizer of the posterior mean.
    After every evaluation, the maximizer of the posterior mean is recorded as the current guess of the argmax.

    The collaborators (`sampler`, `choose_fn`, `optimizer`, `gram_inverse`) can be replaced, e.g., for testing.
    """

    model: SurrogateModel | None
    t: int
    """Number of completed iterations."""

    def __init__(
        self,
        objective: Objective,
        xmin: Float[Array, "d"],
        xmax: Float[Array, "d"],
        T: int,
        initx: Float[Array, "n d"] | None = None,
        inity: Float[Array, "n"] | None = None,
        config: BOConfig | None = None,
        sampler: HyperSampler = sample_hypers,
        choose_fn: ChooseFn = choose,
        optimizer: Optimizer = global_minimize,
        gram_inverse: GramInverse = gram_inverse,
    ):
        r"""
        :param objective: Function to maximize.
        :param xmin: Lower bounds of the domain.
        :param xmax: Upper bounds of the domain.
        :param T: Number of sequential evaluations.
        :param initx: Initial design. If `None` or empty, `config.n_init` points are drawn uniformly at random.
        :param inity: Objective values of the initial design. Evaluated if `None`.
        :param config: Run parameters. Validated before anything is evaluated.
        """
        self.config = config if config is not None else BOConfig()
        self.config.validate()
        if T < 0:
            raise ValueError(f"T must be non-negative, got {T}")

        self.objective = objective
        self.infer_objective = (
            self.config.infer_objective
            if self.config.infer_objective is not None
            else objective
        )
        self.xmin, self.xmax = as_bounds(xmin, xmax)
        self.T = T
        self._initx = initx
        self._inity = inity
        self.sampler = sampler
        self.choose_fn = choose_fn
        self.optimizer = optimizer
        self.gram_inverse = gram_inverse

        self._key = jr.PRNGKey(self.config.seed)
        self.model = None
        self.t = 0
        self.n_resamples = 0
        self.guesses: List[Float[Array, "d"]] = []
        self.guess_vals: List[ScalarFloat] = []
        self.choose_time: List[float] = []
        self.extra_time: List[float] = []

    @property
    def d(self) -> int:
        return self.xmin.shape[0]

    def acquire_key(self) -> KeyArray:
        self._key, key = jr.split(self._key)
        return key

    def _evaluate(self, x: Float[Array, "d"]) -> ScalarFloat:
        return jnp.asarray(self.objective(x), dtype=float).reshape(())

    def _initial_design(self) -> Tuple[Float[Array, "n d"], Float[Array, "n"]]:
        initx = self._initx
        if initx is None or jnp.size(initx) == 0:
            initx = rand_sample_interval(
                self.acquire_key(), self.xmin, self.xmax, self.config.n_init
            )
            inity = None
        else:
            initx = jnp.asarray(initx, dtype=float).reshape(-1, self.d)
            inity = self._inity
        if inity is None:
            inity = jnp.stack([self._evaluate(x) for x in initx])
        inity = jnp.asarray(inity, dtype=float).reshape(-1)
        if inity.shape[0] != initx.shape[0]:
            raise ValueError(
                f"Got {initx.shape[0]} initial points but {inity.shape[0]} initial values"
            )
        return initx, inity

    def initialize(self):
        """Prepares the surrogate from the initial design. Samples hyperparameters and builds the cache."""
        X, y = self._initial_design()
        self.model = SurrogateModel(
            X, y, normalize=self.config.normalize, gram_inverse=self.gram_inverse
        )
        self.guesses = list(X)
        self.guess_vals = list(y)
        self.resample_hypers()
        self.model.rebuild_caches()

    def resample_hypers(self):
        """Replaces all hyperparameter samples given the current observations."""
        assert self.model is not None
        hypers: Hyperparameters = self.sampler(
            self.acquire_key(), self.model.X, self.model.y, self.config.nM, self.config
        )
        assert hypers.n == self.config.nM
        self.model.set_hypers(hypers)
        self.n_resamples += 1

    @property
    def guess_array(self) -> Float[Array, "k d"]:
        return jnp.stack(self.guesses)

    def exploit(self, key: KeyArray) -> Tuple[Float[Array, "d"], ScalarFloat]:
        """Maximizes the posterior mean, using the previous guesses as starting points. Returns the maximizer and the posterior mean there."""
        assert self.model is not None
        model = self.model
        x, value = self.optimizer(
            key,
            lambda x: -model.posterior_mean(x),
            self.xmin,
            self.xmax,
            guesses=self.guess_array,
            grad_f=lambda x: -model.posterior_mean_gradient(x),
        )
        return x, -value

    def step(self, t: int) -> dict:
        """Runs iteration `t`: chooses, evaluates, updates the surrogate and infers the argmax."""
        assert self.model is not None
        start_time = time.perf_counter()
        optimum, acq_value = self.choose_fn(
            self.config.bo_method,
            self.model,
            self.xmin,
            self.xmax,
            self.guess_array,
            t,
            self.config,
            self.acquire_key(),
            optimizer=self.optimizer,
        )
        exploited = bool(jr.uniform(self.acquire_key()) < self.config.epsilon)
        if exploited:
            optimum, _ = self.exploit(self.acquire_key())

        y = self._evaluate(optimum)
        self.model.append(optimum, y)
        if t % self.config.learn_interval == 0:
            self.resample_hypers()
        self.model.rebuild_caches()
        choose_time = time.perf_counter() - start_time

        start_time = time.perf_counter()
        guess, guess_val = self.exploit(self.acquire_key())
        guess_val = self.model.denormalize(guess_val)
        extra_time = time.perf_counter() - start_time

        self.guesses.append(guess)
        self.guess_vals.append(guess_val)
        self.choose_time.append(choose_time)
        self.extra_time.append(extra_time)
        return {
            "t": t,
            "x": optimum,
            "y": y,
            "acq_value": acq_value,
            "exploited": exploited,
            "guess": guess,
            "guess_val": guess_val,
            "choose_time": choose_time,
            "extra_time": extra_time,
        }

    def run(self) -> BOResults:
        """Runs the remaining iterations up to `T` and aggregates the results."""
        if self.model is None:
            self.initialize()

        for t in tqdm(range(self.t + 1, self.T + 1), disable=not self.config.verbose):
            record = self.step(t)
            self.t = t
            if self.config.verbose:
                tqdm.write(
                    f"{t}: tested {np.asarray(record['x'])}; val={float(record['y']):.6g}; "
                    f"guess {np.asarray(record['guess'])}; guessval {float(record['guess_val']):.6g}"
                )
            if self.config.log_wandb:
                wandb.log(
                    {
                        k: np.asarray(v).tolist() if isinstance(v, jnp.ndarray) else v
                        for k, v in record.items()
                    }
                )

        return self.aggregate()

    def aggregate(self) -> BOResults:
        """Evaluates the inference objective at every guess and bundles the run's histories."""
        assert self.model is not None
        infer_vals = []
        for guess in self.guesses:
            value = self.infer_objective(guess)
            infer_vals.append(
                jnp.nan if value is None else float(jnp.asarray(value).reshape(()))
            )

        return BOResults(
            guesses=self.guess_array,
            guess_vals=jnp.asarray(self.guess_vals, dtype=float),
            X=self.model.X,
            y=self.model.unnorm_y,
            choose_time=jnp.asarray(self.choose_time, dtype=float),
            extra_time=jnp.asarray(self.extra_time, dtype=float),
            infer_vals=jnp.asarray(infer_vals, dtype=float),
        )


def gpopt(
    objective: Objective,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    T: int,
    initx: Float[Array, "n d"] | None = None,
    inity: Float[Array, "n"] | None = None,
    config: BOConfig | None = None,
    **kwargs,
) -> BOResults:
    """Maximizes `objective` over `[xmin, xmax]` with `T` evaluations. See `BayesianOptimization`."""
    return BayesianOptimization(
        objective, xmin, xmax, T, initx=initx, inity=inity, config=config, **kwargs
    ).run()
