import jax.numpy as jnp
import jax.random as jr
from jax import config
import pytest
from pytest import approx
from gpbo import BayesianOptimization, BOConfig, gpopt
from gpbo.algorithms.baselines import UCB
from gpbo.algorithms.dispatch import make_tuning
from gpbo.errors import NotPositiveDefiniteError, UnknownAcquisitionError
from gpbo.gp.gram import gram_inverse
from gpbo.gp.hyperopt import Hyperparameters
from gpbo.model import SurrogateModel
from gpbo.utils import rand_sample_interval

config.update("jax_enable_x64", True)

xmin = jnp.zeros(2)
xmax = jnp.ones(2)
EXPLOIT_POINT = jnp.array([0.25, 0.25])


class Objective:
    def __init__(self):
        self.calls = []

    def __call__(self, x):
        self.calls.append(x)
        return -jnp.sum(jnp.square(x - 0.3))


class CountingSampler:
    """Returns fixed hyperparameters whose length-scale identifies the call."""

    def __init__(self):
        self.sizes = []

    def __call__(self, key, X, y, nM, config):
        self.sizes.append(X.shape[0])
        return Hyperparameters(
            lengthscale=jnp.full((nM, X.shape[1]), 0.1 * len(self.sizes)),
            signal_variance=jnp.ones(nM),
            noise_variance=jnp.full(nM, 1e-3),
        )


def random_choose(method, model, xmin, xmax, guesses, t, config, key, optimizer=None):
    return rand_sample_interval(key, xmin, xmax, 1)[0], jnp.array(0.0)


def fixed_optimizer(key, f, xmin, xmax, guesses=None, grad_f=None, **kwargs):
    return EXPLOIT_POINT, f(EXPLOIT_POINT)


def make_bo(T=4, objective=None, sampler=None, **config):
    config = BOConfig(**{"nM": 2, "verbose": False, **config})
    return BayesianOptimization(
        objective if objective is not None else Objective(),
        xmin,
        xmax,
        T,
        initx=jnp.array([[0.5, 0.5]]),
        config=config,
        sampler=sampler if sampler is not None else CountingSampler(),
        choose_fn=random_choose,
        optimizer=fixed_optimizer,
    )


def test_histories_grow():
    results = make_bo(T=4, epsilon=0.0).run()
    assert results.X.shape == (5, 2)
    assert results.y.shape == (5,)
    assert results.guesses.shape == (5, 2)
    assert results.guess_vals.shape == (5,)
    assert results.choose_time.shape == (4,)
    assert results.extra_time.shape == (4,)
    assert results.infer_vals.shape == (5,)
    assert jnp.all(results.choose_time >= 0)


def test_initial_guesses():
    results = make_bo(T=2, epsilon=0.0).run()
    assert jnp.all(results.guesses[0] == jnp.array([0.5, 0.5]))
    assert float(results.guess_vals[0]) == approx(-0.08)
    assert jnp.all(results.guesses[1:] == EXPLOIT_POINT)


def test_resample_schedule():
    sampler = CountingSampler()
    bo = make_bo(T=5, sampler=sampler, learn_interval=2, epsilon=0.0)
    bo.run()
    assert bo.n_resamples == 3
    assert sampler.sizes == [1, 3, 5]


def test_hypers_fixed_between_resamples():
    bo = make_bo(T=4, learn_interval=3, epsilon=0.0)
    bo.initialize()
    lengthscales = [float(bo.model.hypers.lengthscale[0, 0])]
    for t in range(1, 5):
        bo.step(t)
        lengthscales.append(float(bo.model.hypers.lengthscale[0, 0]))
    assert lengthscales == approx([0.1, 0.1, 0.1, 0.2, 0.2])


def test_cache_fresh_after_step():
    bo = make_bo(T=1, epsilon=0.0)
    bo.initialize()
    bo.step(1)
    assert not bo.model.stale
    assert bo.model.kernel_matrix_inv.shape == (2, 2, 2)


def test_never_exploits():
    objective = Objective()
    make_bo(T=5, objective=objective, epsilon=0.0).run()
    assert len(objective.calls) == 6
    assert not any(jnp.all(x == EXPLOIT_POINT) for x in objective.calls[1:])


def test_always_exploits():
    objective = Objective()
    make_bo(T=5, objective=objective, epsilon=1.0).run()
    assert all(jnp.all(x == EXPLOIT_POINT) for x in objective.calls[1:])


def test_unknown_method_before_evaluation():
    objective = Objective()
    with pytest.raises(UnknownAcquisitionError):
        gpopt(objective, xmin, xmax, 3, config=BOConfig(bo_method="GP-EI"))
    assert objective.calls == []


def test_invalid_config():
    with pytest.raises(ValueError):
        make_bo(epsilon=1.5)
    with pytest.raises(ValueError):
        make_bo(learn_interval=0)


def test_random_initial_design():
    objective = Objective()
    bo = BayesianOptimization(
        objective,
        xmin,
        xmax,
        0,
        config=BOConfig(n_init=3, nM=2, verbose=False),
        sampler=CountingSampler(),
        choose_fn=random_choose,
        optimizer=fixed_optimizer,
    )
    results = bo.run()
    assert results.X.shape == (3, 2)
    assert jnp.all(results.X >= xmin) and jnp.all(results.X <= xmax)
    assert len(objective.calls) == 3
    assert results.choose_time.shape == (0,)


def test_given_initial_values_are_not_reevaluated():
    objective = Objective()
    bo = BayesianOptimization(
        objective,
        xmin,
        xmax,
        1,
        initx=jnp.array([[0.5, 0.5], [0.1, 0.9]]),
        inity=jnp.array([1.0, 2.0]),
        config=BOConfig(nM=2, verbose=False, epsilon=0.0),
        sampler=CountingSampler(),
        choose_fn=random_choose,
        optimizer=fixed_optimizer,
    )
    results = bo.run()
    assert len(objective.calls) == 1
    assert jnp.all(results.y[:2] == jnp.array([1.0, 2.0]))


def test_infer_objective():
    results = make_bo(
        T=2, epsilon=0.0, infer_objective=lambda x: jnp.sum(x)
    ).run()
    assert jnp.allclose(results.infer_vals, jnp.sum(results.guesses, axis=1))

    results = make_bo(T=2, epsilon=0.0, infer_objective=lambda x: None).run()
    assert jnp.all(jnp.isnan(results.infer_vals))


def test_to_dataframe():
    df = make_bo(T=3, epsilon=0.0).run().to_dataframe()
    assert df.shape == (4, 9)
    assert list(df.columns[:3]) == ["x_0", "x_1", "y"]
    assert df["choose_time"].isna().sum() == 1
    assert df.index.name == "t"


def test_normalized_guess_values():
    objective = Objective()
    bo = make_bo(T=2, objective=objective, epsilon=0.0, normalize=True)
    results = bo.run()
    assert float(results.guess_vals[-1]) == approx(
        float(bo.model.denormalize(bo.model.posterior_mean(EXPLOIT_POINT)))
    )


def test_ucb_end_to_end():
    config = BOConfig(
        bo_method="UCB",
        epsilon=0.0,
        nM=1,
        lengthscale=jnp.array([0.2, 0.2]),
        signal_variance=1.0,
        noise_variance=1e-4,
        verbose=False,
    )
    initx = jnp.array([[0.5, 0.5]])
    results = gpopt(Objective(), xmin, xmax, 5, initx=initx, config=config)
    assert results.X.shape == (6, 2)
    assert results.guesses.shape == (6, 2)
    assert results.choose_time.shape == (5,)
    assert results.extra_time.shape == (5,)
    assert jnp.all(results.X >= xmin) and jnp.all(results.X <= xmax)

    model = SurrogateModel(initx, results.y[:1])
    model.set_hypers(
        Hyperparameters(
            lengthscale=jnp.array([[0.2, 0.2]]),
            signal_variance=jnp.array([1.0]),
            noise_variance=jnp.array([1e-4]),
        )
    )
    model.rebuild_caches()
    ucb = UCB(
        model=model,
        xmin=xmin,
        xmax=xmax,
        tuning=make_tuning("UCB", 1, xmin, xmax, config),
    )
    assert float(ucb.F(results.X[1])) >= float(ucb.F(results.X[0])) - 1e-9


def test_gram_failure_propagates():
    def failing_gram_inverse(X, lengthscale, signal_variance, noise_variance):
        # one initial point plus two iterations
        if X.shape[0] == 3:
            raise NotPositiveDefiniteError("Gram matrix is not positive definite")
        return gram_inverse(X, lengthscale, signal_variance, noise_variance)

    objective = Objective()
    bo = BayesianOptimization(
        objective,
        xmin,
        xmax,
        5,
        initx=jnp.array([[0.5, 0.5]]),
        config=BOConfig(nM=2, verbose=False, epsilon=0.0),
        sampler=CountingSampler(),
        choose_fn=random_choose,
        optimizer=fixed_optimizer,
        gram_inverse=failing_gram_inverse,
    )
    with pytest.raises(NotPositiveDefiniteError):
        bo.run()
    assert len(objective.calls) == 3
    assert bo.t == 1


class FailingObjective(Objective):
    def __call__(self, x):
        super().__call__(x)
        if len(self.calls) == 3:
            raise RuntimeError("simulation crashed")
        return -jnp.sum(jnp.square(x - 0.3))


def test_objective_failure_propagates():
    objective = FailingObjective()
    bo = make_bo(T=5, objective=objective, epsilon=0.0)
    with pytest.raises(RuntimeError, match="simulation crashed"):
        bo.run()
    assert len(objective.calls) == 3
    assert bo.model.n == 2
