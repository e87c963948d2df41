"""
Gaussian process building blocks.

* `gpbo.gp.kernels` implements the squared exponential (ARD) covariance function.
* `gpbo.gp.gram` builds Gram matrices and their inverses.
* `gpbo.gp.hyperopt` samples hyperparameters from their posterior.
* `gpbo.gp.features` samples posterior functions with random Fourier features.
"""
