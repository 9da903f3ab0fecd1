"""Forecasting models module.

SARIMA candidates are fitted one order at a time (models/sarima.py) and
searched, ranked and compared by AICc (models/search.py).

When adding a new forecasting model, subclass ForecastModel and expose
debug information through a ``debug_`` attribute populated in forecast():

    self.debug_ = ModelDebugInfo(
        model_name="your_model_name",
        data={"order": ..., "aicc": ...},
    )

Never change the return type of forecast(); it always returns a Forecast.
"""

from traffic_core.forecasting.models.base import ForecastModel
from traffic_core.forecasting.models.sarima import SarimaModel, aicc, fit_sarima
from traffic_core.forecasting.models.search import propose_candidates, rank_models, search_models

__all__ = [
    "ForecastModel",
    "SarimaModel",
    "aicc",
    "fit_sarima",
    "propose_candidates",
    "rank_models",
    "search_models",
]
