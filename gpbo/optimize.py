from typing import Callable, Tuple
from jax import grad, jit, lax, vmap
import jax.numpy as jnp
from jaxtyping import Array, Float
import optax
from gpbo.typing import KeyArray, ScalarFloat
from gpbo.utils import rand_sample_interval

ScalarFunction = Callable[[Float[Array, "d"]], ScalarFloat]
GradientFunction = Callable[[Float[Array, "d"]], Float[Array, "d"]]

Optimizer = Callable[..., Tuple[Float[Array, "d"], ScalarFloat]]
"""Global minimizer with the signature of `global_minimize`."""


def global_minimize(
    key: KeyArray,
    f: ScalarFunction,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    guesses: Float[Array, "k d"] | None = None,
    grad_f: GradientFunction | None = None,
    n_candidates: int = 1_000,
    n_starts: int = 5,
    num_iters: int = 100,
    learning_rate: float | None = None,
) -> Tuple[Float[Array, "d"], ScalarFloat]:
    """
    Minimizes `f` over the box `[xmin, xmax]`.

    Evaluates `f` at `n_candidates` uniformly random points and at the `guesses` (clipped into the box),
    then refines the `n_starts` best candidates with projected Adam steps along `grad_f` (defaults to the gradient of `f`).

    Returns the minimizer and its value.
    """
    candidates = rand_sample_interval(key, xmin, xmax, n_candidates)
    if guesses is not None and guesses.shape[0] > 0:
        candidates = jnp.concatenate(
            (jnp.clip(guesses.reshape(-1, xmin.shape[0]), xmin, xmax), candidates)
        )
    values = vmap(f)(candidates)
    values = jnp.where(jnp.isfinite(values), values, jnp.inf)
    idx = jnp.argsort(values)[: min(n_starts, candidates.shape[0])]
    starts = candidates[idx]

    if grad_f is None:
        grad_f = grad(f)
    if learning_rate is None:
        learning_rate = 1e-2 * float(jnp.max(xmax - xmin))
    optimizer = optax.adam(learning_rate=learning_rate)

    @jit
    def refine(starts: Float[Array, "k d"]) -> Float[Array, "k d"]:
        def engine(x: Float[Array, "d"]) -> Float[Array, "d"]:
            def step(i, carry):
                x, opt_state = carry
                g = grad_f(x)
                g = jnp.where(jnp.isfinite(g), g, 0.0)
                updates, opt_state = optimizer.update(g, opt_state, x)
                x = jnp.clip(optax.apply_updates(x, updates), xmin, xmax)
                return x, opt_state

            return lax.fori_loop(0, num_iters, step, (x, optimizer.init(x)))[0]

        return vmap(engine)(starts)

    refined = refine(starts)
    refined_values = vmap(f)(refined)
    refined_values = jnp.where(jnp.isfinite(refined_values), refined_values, jnp.inf)

    X = jnp.concatenate((starts, refined))
    F = jnp.concatenate((values[idx], refined_values))
    best = jnp.argmin(F)
    return X[best], F[best]


def global_maximize(
    key: KeyArray,
    f: ScalarFunction,
    xmin: Float[Array, "d"],
    xmax: Float[Array, "d"],
    guesses: Float[Array, "k d"] | None = None,
    grad_f: GradientFunction | None = None,
    optimizer: Optimizer = global_minimize,
    **kwargs,
) -> Tuple[Float[Array, "d"], ScalarFloat]:
    """Maximizes `f` over the box `[xmin, xmax]` by minimizing $-f$ with `optimizer`. Returns the maximizer and its value."""
    x, value = optimizer(
        key,
        lambda x: -f(x),
        xmin,
        xmax,
        guesses=guesses,
        grad_f=(lambda x: -grad_f(x)) if grad_f is not None else None,
        **kwargs,
    )
    return x, -value
