"""
This library maximizes expensive black-box functions over a box with sequential Bayesian optimization.

There are three main components:
1. `gpbo.model` - A Gaussian process surrogate whose hyperparameters are sampled from their posterior (`gpbo.gp`).
1. `gpbo.algorithms` - The acquisition functions, selected by name.
1. `gpbo.bo` - The optimization loop, which also tracks the maximizer of the posterior mean.

The following pseudocode illustrates how the loop composes these components.

```python
model: SurrogateModel = INITIAL_MODEL
for t in range(1, T + 1):
    x = choose(config.bo_method, model, ...)
    if uniform() < config.epsilon:
        x = argmax(model.posterior_mean)
    model.append(x, f(x))
    if t % config.learn_interval == 0:
        model.set_hypers(sample_hypers(model.X, model.y, config.nM))
    model.rebuild_caches()
    guesses.append(argmax(model.posterior_mean))
```
"""
from gpbo.bo import BayesianOptimization, BOResults, gpopt
from gpbo.config import BOConfig

__all__ = ["BayesianOptimization", "BOConfig", "BOResults", "gpopt"]
