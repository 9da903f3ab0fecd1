"""SARIMA estimation for a single candidate order.

Each candidate is fitted by maximum likelihood with statsmodels SARIMAX on the
transformed, non-differenced series (the model integrates internally).
Coefficients named in the order's mask are held at exactly zero through
``fit_constrained``. The parameter space is left unconstrained so that fits
with AR or MA roots on or inside the unit circle are detected and rejected
instead of being silently reparameterized.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning, HessianInversionWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

from traffic_core.exceptions import (
    ConvergenceError,
    InsufficientDataError,
    NonInvertibleFitError,
    NonStationaryFitError,
)
from traffic_core.forecasting.config import INTERVAL_SE, MAX_ITER
from traffic_core.forecasting.data.preparation import validate_series
from traffic_core.forecasting.forecaster import forecast as forecast_fitted
from traffic_core.forecasting.models.base import ForecastModel
from traffic_core.forecasting.transforms import apply_transform
from traffic_core.forecasting.types import (
    FittedModel,
    Forecast,
    ModelDebugInfo,
    SarimaOrder,
    TransformSpec,
)

# Convergence is read from mle_retvals, so the warnings themselves are noise
warnings.filterwarnings("ignore", category=ConvergenceWarning)
warnings.filterwarnings("ignore", category=HessianInversionWarning)
warnings.filterwarnings("ignore", message=".*[Nn]on-invertible starting.*")
warnings.filterwarnings("ignore", message=".*[Nn]on-stationary starting.*")

logger = logging.getLogger(__name__)

# Roots with modulus within this distance of 1 count as unit roots
ROOT_TOLERANCE = 1e-6


def aicc(llf: float, nobs: int, k: int) -> float:
    """Bias-corrected AIC: AIC + 2k(k+1)/(n-k-1) with AIC = -2*llf + 2k.

    Args:
        llf: Maximized log-likelihood
        nobs: Effective sample size
        k: Number of estimated parameters

    Raises:
        InsufficientDataError: If n - k - 1 <= 0
    """
    if nobs - k - 1 <= 0:
        raise InsufficientDataError(
            f"AICc needs more observations than parameters + 1 (n={nobs}, k={k})"
        )
    aic = -2.0 * llf + 2.0 * k
    return aic + 2.0 * k * (k + 1) / (nobs - k - 1)


def outside_unit_circle(roots: np.ndarray) -> bool:
    return bool(np.all(np.abs(roots) > 1.0 + ROOT_TOLERANCE))


def fit_sarima(series: pd.Series, order: SarimaOrder, maxiter: int = MAX_ITER) -> FittedModel:
    """Fit one SARIMA candidate by maximum likelihood.

    Args:
        series: Transformed, non-differenced training series
        order: Candidate order with optional coefficient mask
        maxiter: Maximum optimizer iterations

    Returns:
        FittedModel with coefficients, likelihood, AICc and operator roots

    Raises:
        InsufficientDataError: If too few observations remain for AICc
        ConvergenceError: If the optimizer fails or does not converge
        NonStationaryFitError: If an AR root lies on or inside the unit circle
        NonInvertibleFitError: If an MA root lies on or inside the unit circle
    """
    series = validate_series(series, name="training series")
    nobs_effective = len(series) - order.burn_in
    k_free = order.k_arma + 1  # innovation variance is estimated too
    if nobs_effective - k_free - 1 <= 0:
        raise InsufficientDataError(
            f"{order.label}: {nobs_effective} effective observations for {k_free} parameters"
        )

    model = SARIMAX(
        series,
        order=order.order,
        seasonal_order=order.seasonal_order,
        trend="n",
        enforce_stationarity=False,
        enforce_invertibility=False,
    )
    try:
        if order.mask:
            constraints = {name: 0.0 for name in sorted(order.mask)}
            results = model.fit_constrained(constraints, disp=False, maxiter=maxiter)
        else:
            results = model.fit(disp=False, maxiter=maxiter)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise ConvergenceError(f"{order.label}: optimizer failed: {exc}") from exc

    retvals: dict[str, Any] = results.mle_retvals or {}
    if not retvals.get("converged", True):
        raise ConvergenceError(
            f"{order.label}: optimizer did not converge within {maxiter} iterations"
        )
    llf = float(results.llf)
    if not np.isfinite(llf):
        raise ConvergenceError(f"{order.label}: non-finite log-likelihood")

    params = pd.Series(np.asarray(results.params), index=model.param_names)
    bse = pd.Series(np.asarray(results.bse), index=model.param_names)
    # roots of the reduced (non-seasonal x seasonal) lag polynomials
    ar_roots = np.asarray(results.arroots, dtype=complex)
    ma_roots = np.asarray(results.maroots, dtype=complex)

    if not outside_unit_circle(ar_roots):
        raise NonStationaryFitError(
            f"{order.label}: AR root modulus {np.abs(ar_roots).min():.4f} <= 1 (non-stationary)"
        )
    if not outside_unit_circle(ma_roots):
        raise NonInvertibleFitError(
            f"{order.label}: MA root modulus {np.abs(ma_roots).min():.4f} <= 1 (non-invertible)"
        )

    score = aicc(llf, nobs_effective, k_free)
    logger.debug("Fitted %s: llf=%.3f aicc=%.3f k=%d", order.label, llf, score, k_free)
    return FittedModel(
        order=order,
        params=params,
        bse=bse,
        llf=llf,
        aic=-2.0 * llf + 2.0 * k_free,
        aicc=score,
        k_free=k_free,
        nobs_effective=nobs_effective,
        ar_roots=ar_roots,
        ma_roots=ma_roots,
        training=series,
        results=results,
    )


class SarimaModel(ForecastModel):
    """SARIMA model for one fixed order, bound to a variance-stabilizing transform.

    train() transforms the raw series and fits the order; forecast() predicts
    on the transformed scale and inverts the transform.
    """

    def __init__(
        self,
        order: SarimaOrder,
        transform: TransformSpec,
        maxiter: int = MAX_ITER,
    ) -> None:
        self.order = order
        self.transform = transform
        self.maxiter = maxiter
        self.debug_: ModelDebugInfo | None = None

    def train(self, series: pd.Series, **_kwargs: Any) -> FittedModel:
        """Fit the order on the transformed series.

        Args:
            series: Series on the original scale (strictly positive)
            **_kwargs: Additional parameters (unused, for interface compatibility)

        Returns:
            FittedModel on the transformed scale
        """
        transformed = apply_transform(series, self.transform)
        return fit_sarima(transformed, self.order, maxiter=self.maxiter)

    def forecast(self, model: FittedModel, steps: int, **kwargs: Any) -> Forecast:
        """Forecast `steps` ahead and back-transform to the original scale.

        Args:
            model: FittedModel from train()
            steps: Number of periods to forecast ahead
            **kwargs: Can include 'n_se', the interval half-width in standard errors

        Returns:
            Forecast on both scales
        """
        result = forecast_fitted(model, steps, self.transform, n_se=kwargs.get("n_se", INTERVAL_SE))

        self.debug_ = ModelDebugInfo(
            model_name="sarima",
            data={
                "order": model.label,
                "transform": self.transform.label,
                "aicc": model.aicc,
                "llf": model.llf,
                "params": model.params.to_dict(),
                "min_ar_root_modulus": float(np.abs(model.ar_roots).min()) if model.ar_roots.size else None,
                "min_ma_root_modulus": float(np.abs(model.ma_roots).min()) if model.ma_roots.size else None,
                "horizon_steps": steps,
            },
        )
        return result
