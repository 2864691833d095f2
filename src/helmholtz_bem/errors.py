from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid mesh, body selection, field point or boundary-condition setup."""


class SingularSystemError(RuntimeError):
    """
    The dense BEM system could not be factorised reliably (pivot below
    threshold), typically at an irregular frequency of an Exterior problem.
    """

    def __init__(self, message: str, frequency: float | None = None):
        # both in args so the error survives a round trip through a process pool
        super().__init__(message, frequency)
        self.message = message
        self.frequency = frequency

    def __str__(self) -> str:
        if self.frequency is None:
            return self.message
        return f"{self.message} (frequency={self.frequency:g} Hz)"


class NumericalToleranceWarning(RuntimeWarning):
    """Adaptive near-singular quadrature stopped before reaching its tolerance."""
