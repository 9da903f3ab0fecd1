"""Domain-specific exceptions for Traffic Core.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from TrafficCoreError for easy catching.
"""


class TrafficCoreError(Exception):
    """Base exception for all Traffic Core errors.

    Users can catch this exception to handle any modeling-engine error.
    """

    pass


class ConfigError(TrafficCoreError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Invalid configuration values are provided (ranges, horizons, lags)
    - A coefficient mask names a coefficient the order does not have
    - Candidate orders disagree with the differencing already applied
    """

    pass


class DomainError(TrafficCoreError):
    """Raised when a transform precondition is violated.

    This exception is raised when:
    - A power or log transform receives zero or negative values
    - A series contains NaN or infinite values
    - An inverse power transform would raise a negative base to a
      non-integer power (the interval reaches an invalid region)
    """

    pass


class InsufficientDataError(TrafficCoreError):
    """Raised when there are not enough observations for an operation.

    This exception is raised when:
    - A differencing step would consume the whole series
    - The stationary series is shorter than the analysis minimum
    - The residuals are shorter than the diagnostic horizon
    """

    pass


class NumericalError(TrafficCoreError):
    """Raised when a computation is numerically degenerate.

    This exception is raised when:
    - The Box-Cox likelihood surface is flat (no distinguishable optimum)
    - A variance that must be positive is zero
    """

    pass


class EstimationError(TrafficCoreError):
    """Base class for failures of a single SARIMA candidate fit.

    The model search catches these per candidate and records them; they
    never abort the whole search.
    """

    pass


class ConvergenceError(EstimationError):
    """Raised when the optimizer fails to converge for a candidate.

    Timeouts of a candidate fit are reported with this error as well.
    """

    pass


class NonStationaryFitError(EstimationError):
    """Raised when a fitted AR operator has a root on or inside the unit circle."""

    pass


class NonInvertibleFitError(EstimationError):
    """Raised when a fitted MA operator has a root on or inside the unit circle."""

    pass


class ModelSelectionError(TrafficCoreError):
    """Raised when no candidate both estimated successfully and passed diagnostics."""

    pass
