"""Residual diagnostics for fitted SARIMA candidates.

A candidate passes when its residuals look like white noise: the Ljung-Box
and Box-Pierce portmanteau tests on the residuals (degrees of freedom
corrected by the number of estimated ARMA coefficients) and on the squared
residuals (no correction; detects conditional heteroskedasticity) must not
reject at the significance level. Shapiro-Wilk normality and the
autoregressive order selected for the residuals are reported as caveats but
do not disqualify a model.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.ar_model import ar_select_order

from traffic_core.exceptions import ConfigError, InsufficientDataError
from traffic_core.forecasting.config import DIAGNOSTICS_LAG, SIGNIFICANCE_LEVEL
from traffic_core.forecasting.types import CheckResult, DiagnosticsReport, FittedModel

logger = logging.getLogger(__name__)


def residuals(fitted: FittedModel, drop_initial: bool = False) -> pd.Series:
    """One-step prediction errors of a fitted model on its training series.

    Args:
        fitted: Fitted model
        drop_initial: Drop the first residuals (one per state), which only
            absorb the diffuse initialization of the state vector

    Returns:
        Residual series indexed like the training series
    """
    resid = pd.Series(
        np.asarray(fitted.results.resid, dtype=float),
        index=fitted.training.index,
        name="residual",
    )
    if drop_initial:
        return resid.iloc[fitted.order.initial_states :]
    return resid


def _pvalue_check(name: str, statistic: float, pvalue: float, alpha: float, gating: bool) -> CheckResult:
    passed = bool(pvalue > alpha)
    verdict = "does not reject" if passed else "rejects"
    return CheckResult(
        name=name,
        statistic=float(statistic),
        pvalue=float(pvalue),
        alpha=alpha,
        passed=passed,
        gating=gating,
        detail=f"{name}: statistic={statistic:.4f}, p={pvalue:.4f} vs alpha={alpha} ({verdict} null)",
    )


def _portmanteau(name: str, values: pd.Series, lag: int, model_df: int, alpha: float) -> list[CheckResult]:
    table = acorr_ljungbox(values, lags=[lag], model_df=model_df, boxpierce=True)
    row = table.iloc[-1]
    return [
        _pvalue_check(f"ljung_box{name}", row["lb_stat"], row["lb_pvalue"], alpha, gating=True),
        _pvalue_check(f"box_pierce{name}", row["bp_stat"], row["bp_pvalue"], alpha, gating=True),
    ]


def residual_ar_order(resid: pd.Series, maxlag: int) -> int:
    """Autoregressive order selected for the residuals by AIC (0 = white noise)."""
    selection = ar_select_order(resid.to_numpy(), maxlag=maxlag, ic="aic", trend="n")
    lags = selection.ar_lags
    return int(max(lags)) if lags else 0


def run_diagnostics(
    fitted: FittedModel,
    lag: int = DIAGNOSTICS_LAG,
    alpha: float = SIGNIFICANCE_LEVEL,
) -> DiagnosticsReport:
    """Run the residual test battery on one fitted model.

    Args:
        fitted: Fitted model
        lag: Lag horizon of the portmanteau tests and the AR order search
        alpha: Significance level

    Returns:
        DiagnosticsReport with one CheckResult per test

    Raises:
        ConfigError: If alpha is outside (0, 1) or lag does not exceed the
            number of estimated ARMA coefficients
        InsufficientDataError: If there are no more residuals than `lag`
    """
    if not 0 < alpha < 1:
        raise ConfigError(f"alpha must be in (0, 1), got {alpha}")
    if lag <= fitted.k_arma:
        raise ConfigError(
            f"Diagnostics lag {lag} must exceed the {fitted.k_arma} estimated coefficients of {fitted.label}"
        )

    resid = residuals(fitted, drop_initial=True)
    if len(resid) <= lag:
        raise InsufficientDataError(
            f"{fitted.label}: {len(resid)} residuals for a lag-{lag} diagnostic horizon"
        )

    checks: list[CheckResult] = []

    sw_stat, sw_pvalue = stats.shapiro(resid.to_numpy())
    checks.append(_pvalue_check("shapiro_wilk", sw_stat, sw_pvalue, alpha, gating=False))

    checks.extend(_portmanteau("", resid, lag, fitted.k_arma, alpha))
    checks.extend(_portmanteau("_squared", resid**2, lag, 0, alpha))

    order = residual_ar_order(resid, maxlag=lag)
    checks.append(
        CheckResult(
            name="residual_ar_order",
            statistic=float(order),
            pvalue=None,
            alpha=alpha,
            passed=order == 0,
            gating=False,
            detail=f"residual_ar_order: AIC selects AR({order}) for the residuals (expected AR(0))",
        )
    )

    report = DiagnosticsReport(model=fitted.label, lag=lag, alpha=alpha, checks=tuple(checks))
    if report.passed:
        logger.info(report.describe())
    else:
        logger.warning(report.describe())
    return report


def diagnose_all(
    models: Iterable[FittedModel],
    lag: int = DIAGNOSTICS_LAG,
    alpha: float = SIGNIFICANCE_LEVEL,
) -> Dict[str, DiagnosticsReport]:
    """Diagnostics report per model label, in the order given."""
    return {fitted.label: run_diagnostics(fitted, lag=lag, alpha=alpha) for fitted in models}
