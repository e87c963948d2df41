from gpbo.gp.kernels import stationary
from gpbo.gp.kernels.base import Kernel, P, Parameterized, Parameters

__all__ = ["Kernel", "P", "Parameterized", "Parameters", "stationary"]
