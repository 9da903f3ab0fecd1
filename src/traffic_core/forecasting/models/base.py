"""Base model interface for forecasting models.

This module defines the abstract base class forecasting models implement,
so the pipeline can train and forecast without knowing the model structure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd

from traffic_core.forecasting.types import Forecast


class ForecastModel(ABC):
    """Abstract base class for forecasting models.

    All forecasting models must implement the train() and forecast() methods
    to provide a consistent interface for the forecasting pipeline.
    """

    @abstractmethod
    def train(self, series: pd.Series, **kwargs) -> object:
        """Train the forecasting model on a time series.

        Args:
            series: Time series on the original scale (not transformed)
            **kwargs: Model-specific options

        Returns:
            Trained model object (type depends on implementation)

        Raises:
            EstimationError: If the fit fails or violates the root conditions
        """
        pass

    @abstractmethod
    def forecast(self, model: object, steps: int, **kwargs) -> Forecast:
        """Generate a forecast from a trained model.

        Args:
            model: Trained model object (from train() method)
            steps: Number of periods to forecast ahead
            **kwargs: Model-specific forecast parameters

        Returns:
            Forecast with transformed-scale and original-scale columns
        """
        pass
