"""Shared value types for the forecasting engine.

Every type here is an immutable dataclass. Pipeline stages exchange these
values instead of mutating shared state, so candidate fits can run in
parallel against the same training series.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd

from traffic_core.exceptions import ConfigError

POWER = "power"
LOG = "log"
TRANSFORM_FAMILIES = (POWER, LOG)


@dataclass(frozen=True)
class ModelDebugInfo:
    """Generic container for model-specific debug information.

    Attributes:
        model_name: Short identifier for the model, e.g. "sarima".
        version: Optional version string if model behavior changes over time.
        data: Arbitrary model-specific payload (dict of JSON-like values).

    """

    model_name: str
    version: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class Partition:
    """Training / validation / combined slices of one parent series.

    Attributes:
        training: Observations used for transform selection and model fitting.
        validation: Held-out observations immediately following training.
        combined: training followed by validation.
        discarded: Prefix of the parent dropped before training (may be empty).
    """

    training: pd.Series
    validation: pd.Series
    combined: pd.Series
    discarded: pd.Series


@dataclass(frozen=True)
class TransformSpec:
    """Variance-stabilizing transform family and its parameter.

    Attributes:
        family: "power" (Box-Cox) or "log".
        lmbda: Box-Cox lambda. Always 0.0 for the log family.
    """

    family: str
    lmbda: float = 0.0

    def __post_init__(self) -> None:
        if self.family not in TRANSFORM_FAMILIES:
            raise ConfigError(
                f"Unknown transform family {self.family!r}. Expected one of {TRANSFORM_FAMILIES}"
            )
        if self.family == LOG and self.lmbda != 0.0:
            raise ConfigError(f"Log transform takes no lambda (got {self.lmbda})")

    @property
    def label(self) -> str:
        if self.family == LOG:
            return "log"
        return f"boxcox(lambda={self.lmbda:.4f})"


@dataclass(frozen=True, eq=False)
class TransformSelection:
    """Outcome of comparing the Box-Cox transform against the log transform.

    Attributes:
        chosen: The selected TransformSpec.
        power: Box-Cox spec with the profile-likelihood lambda.
        log: Log spec.
        power_normality: Shapiro-Wilk W of the Box-Cox transformed series.
        log_normality: Shapiro-Wilk W of the log transformed series.
        power_series: Box-Cox transformed series.
        log_series: Log transformed series.
    """

    chosen: TransformSpec
    power: TransformSpec
    log: TransformSpec
    power_normality: float
    log_normality: float
    power_series: pd.Series = field(repr=False)
    log_series: pd.Series = field(repr=False)

    @property
    def series(self) -> pd.Series:
        """Transformed series for the chosen family."""
        return self.power_series if self.chosen.family == POWER else self.log_series


@dataclass(frozen=True)
class DifferencingSpec:
    """Ordered (lag, order) differencing steps.

    Steps are applied first to last; order matters for reconstruction.
    """

    steps: Tuple[Tuple[int, int], ...]

    def __post_init__(self) -> None:
        steps = tuple((int(lag), int(order)) for lag, order in self.steps)
        for lag, order in steps:
            if lag < 1 or order < 1:
                raise ConfigError(f"Invalid differencing step (lag={lag}, order={order})")
        object.__setattr__(self, "steps", steps)

    @classmethod
    def seasonal(cls, period: int) -> DifferencingSpec:
        """Seasonal difference at `period`, then a trend difference at lag 1."""
        return cls(steps=((period, 1), (1, 1)))

    @property
    def total_lag(self) -> int:
        """Number of observations consumed by all steps."""
        return sum(lag * order for lag, order in self.steps)

    def integration_orders(self, seasonal_period: int) -> Tuple[int, int]:
        """Return (d, D): trend and seasonal integration orders of this spec."""
        d = sum(order for lag, order in self.steps if lag == 1)
        seasonal = sum(order for lag, order in self.steps if lag == seasonal_period)
        unsupported = [lag for lag, _ in self.steps if lag not in (1, seasonal_period)]
        if unsupported:
            raise ConfigError(
                f"Differencing lags {unsupported} cannot be expressed as SARIMA integration "
                f"with seasonal period {seasonal_period}"
            )
        return d, seasonal

    @property
    def label(self) -> str:
        return " -> ".join(f"diff(lag={lag})^{order}" for lag, order in self.steps)


@dataclass(frozen=True, eq=False)
class StationarityResult:
    """Differenced series plus the variance recorded after each step.

    Attributes:
        series: Final differenced series.
        spec: Differencing spec that produced it.
        variance_trace: Variance before differencing followed by the variance
            after each single application of a lag.
        step_labels: Label for each entry of variance_trace.
        overdifferenced_at: Index into variance_trace of the first step whose
            variance rose or failed to drop enough, else None.
        adf_pvalue: Augmented Dickey-Fuller p-value of the final series, or
            None when the series is too short for the test.
    """

    series: pd.Series
    spec: DifferencingSpec
    variance_trace: Tuple[float, ...]
    step_labels: Tuple[str, ...]
    overdifferenced_at: Optional[int] = None
    adf_pvalue: Optional[float] = None

    @property
    def is_overdifferenced(self) -> bool:
        return self.overdifferenced_at is not None

    def trace_frame(self) -> pd.DataFrame:
        """Variance trace as a DataFrame with columns step, variance."""
        return pd.DataFrame({"step": list(self.step_labels), "variance": list(self.variance_trace)})


@dataclass(frozen=True)
class SarimaOrder:
    """SARIMA (p, d, q) x (P, D, Q, s) order with an optional coefficient mask.

    The mask holds statsmodels coefficient names (``ar.L2``, ``ma.S.L14`` ...)
    that are fixed to exactly zero during estimation instead of estimated.
    """

    p: int
    d: int
    q: int
    P: int
    D: int
    Q: int
    s: int
    mask: frozenset = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "mask", frozenset(self.mask))
        for name in ("p", "d", "q", "P", "D", "Q"):
            if getattr(self, name) < 0:
                raise ConfigError(f"SARIMA order {name} must be non-negative")
        if self.s < 0 or self.s == 1:
            raise ConfigError(f"Seasonal period must be 0 or >= 2 (got {self.s})")
        if self.s == 0 and (self.P or self.D or self.Q):
            raise ConfigError("Seasonal orders require a seasonal period")
        unknown = sorted(self.mask - set(self.coefficient_names))
        if unknown:
            raise ConfigError(f"Mask names coefficients absent from {self.label}: {unknown}")

    @property
    def order(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal_order(self) -> Tuple[int, int, int, int]:
        return (self.P, self.D, self.Q, self.s)

    @property
    def coefficient_names(self) -> Tuple[str, ...]:
        """ARMA coefficient names in statsmodels SARIMAX naming."""
        names = [f"ar.L{k}" for k in range(1, self.p + 1)]
        names += [f"ma.L{k}" for k in range(1, self.q + 1)]
        names += [f"ar.S.L{k * self.s}" for k in range(1, self.P + 1)]
        names += [f"ma.S.L{k * self.s}" for k in range(1, self.Q + 1)]
        return tuple(names)

    @property
    def k_arma(self) -> int:
        """Number of ARMA coefficients actually estimated."""
        return len(self.coefficient_names) - len(self.mask)

    @property
    def burn_in(self) -> int:
        """Observations consumed by the integrated part of the model."""
        return self.d + self.D * self.s

    @property
    def initial_states(self) -> int:
        """State dimension of the model; the first this many residuals are initialization noise."""
        return self.burn_in + max(self.p + self.P * self.s, self.q + self.Q * self.s + 1)

    @property
    def label(self) -> str:
        text = f"SARIMA({self.p},{self.d},{self.q})x({self.P},{self.D},{self.Q},{self.s})"
        if self.mask:
            text += " fixed[" + ",".join(sorted(self.mask)) + "]"
        return text


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Result of one successful SARIMA estimation.

    Attributes:
        order: Order and mask that was fitted.
        params: Estimated parameters (masked coefficients appear as 0.0).
        bse: Standard errors of the parameters (NaN for fixed ones).
        llf: Maximized Gaussian log-likelihood.
        aic: Akaike Information Criterion.
        aicc: Bias-corrected AIC used for ranking.
        k_free: Estimated parameters, innovation variance included.
        nobs_effective: Sample size after the model's differencing.
        ar_roots: Roots of the combined AR characteristic polynomial.
        ma_roots: Roots of the combined MA characteristic polynomial.
        training: The exact (transformed) series the model was fit on.
        results: Underlying statsmodels results object.
    """

    order: SarimaOrder
    params: pd.Series
    bse: pd.Series
    llf: float
    aic: float
    aicc: float
    k_free: int
    nobs_effective: int
    ar_roots: np.ndarray = field(repr=False)
    ma_roots: np.ndarray = field(repr=False)
    training: pd.Series = field(repr=False)
    results: Any = field(repr=False)

    @property
    def label(self) -> str:
        return self.order.label

    @property
    def k_arma(self) -> int:
        return self.order.k_arma


@dataclass(frozen=True)
class CandidateFailure:
    """A candidate rejected during the model search.

    Attributes:
        order: Candidate order that failed.
        kind: Exception class name (ConvergenceError, NonStationaryFitError ...).
        message: Explanation of why the candidate was rejected.
    """

    order: SarimaOrder
    kind: str
    message: str

    @property
    def label(self) -> str:
        return self.order.label


@dataclass(frozen=True, eq=False)
class SearchResult:
    """Ranked fitted candidates plus the rejected ones."""

    ranked: Tuple[FittedModel, ...]
    failures: Tuple[CandidateFailure, ...] = ()

    @property
    def best(self) -> Optional[FittedModel]:
        return self.ranked[0] if self.ranked else None

    def summary(self) -> pd.DataFrame:
        """One row per candidate: rank, label, k_free, llf, aic, aicc, status, reason."""
        rows = []
        for rank, fitted in enumerate(self.ranked, start=1):
            rows.append(
                {
                    "rank": rank,
                    "model": fitted.label,
                    "k_free": fitted.k_free,
                    "llf": fitted.llf,
                    "aic": fitted.aic,
                    "aicc": fitted.aicc,
                    "status": "ok",
                    "reason": "",
                }
            )
        for failure in self.failures:
            rows.append(
                {
                    "rank": None,
                    "model": failure.label,
                    "k_free": None,
                    "llf": None,
                    "aic": None,
                    "aicc": None,
                    "status": failure.kind,
                    "reason": failure.message,
                }
            )
        columns = ["rank", "model", "k_free", "llf", "aic", "aicc", "status", "reason"]
        return pd.DataFrame(rows, columns=columns)


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one residual diagnostic.

    Attributes:
        name: Test identifier, e.g. "ljung_box".
        statistic: Test statistic (selected order for the AR order check).
        pvalue: p-value, or None when the check has none.
        alpha: Significance level the verdict was taken at.
        passed: True when the white-noise / normality null is not rejected.
        gating: Whether a failure disqualifies the model.
        detail: Human-readable explanation of the verdict.
    """

    name: str
    statistic: float
    pvalue: Optional[float]
    alpha: float
    passed: bool
    gating: bool
    detail: str = ""


@dataclass(frozen=True)
class DiagnosticsReport:
    """Residual diagnostics for one fitted candidate."""

    model: str
    lag: int
    alpha: float
    checks: Tuple[CheckResult, ...]

    @property
    def passed(self) -> bool:
        """True when every gating check passed."""
        return all(check.passed for check in self.checks if check.gating)

    def failures(self) -> Tuple[CheckResult, ...]:
        """Gating checks that failed."""
        return tuple(check for check in self.checks if check.gating and not check.passed)

    def caveats(self) -> Tuple[CheckResult, ...]:
        """Non-gating checks that failed (reported, not disqualifying)."""
        return tuple(check for check in self.checks if not check.gating and not check.passed)

    def check(self, name: str) -> CheckResult:
        for check in self.checks:
            if check.name == name:
                return check
        raise KeyError(name)

    def describe(self) -> str:
        verdict = "passed" if self.passed else "failed"
        reasons = [check.detail for check in self.failures() + self.caveats()]
        text = f"{self.model}: diagnostics {verdict}"
        if reasons:
            text += " (" + "; ".join(reasons) + ")"
        return text

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "model": self.model,
                    "test": check.name,
                    "statistic": check.statistic,
                    "pvalue": check.pvalue,
                    "alpha": check.alpha,
                    "passed": check.passed,
                    "gating": check.gating,
                }
                for check in self.checks
            ]
        )


@dataclass(frozen=True, eq=False)
class Forecast:
    """Point forecasts and interval bounds on both scales.

    Attributes:
        horizon: Number of steps forecast.
        transform: Transform used for the inversion.
        transformed: Columns mean, se, lower, upper on the transformed scale.
        original: Columns mean, lower, upper on the original scale.
        model: Label of the model that produced the forecast.
    """

    horizon: int
    transform: TransformSpec
    transformed: pd.DataFrame
    original: pd.DataFrame
    model: str = ""

    @property
    def mean(self) -> pd.Series:
        """Point forecasts on the original scale."""
        return self.original["mean"]
