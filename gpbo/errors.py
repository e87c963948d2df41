class UnknownAcquisitionError(ValueError):
    """Raised when the configured acquisition method is not registered."""

    def __init__(self, name: str):
        super().__init__(f"No such BO method: {name!r}")
        self.name = name


class NotPositiveDefiniteError(ArithmeticError):
    """Raised when the Cholesky factorization of a Gram matrix fails."""


class StaleCacheError(RuntimeError):
    """Raised when cached inverse Gram matrices are read before being rebuilt for the current data."""
