"""Configuration constants for the forecasting engine."""

# Seasonal period for time series models (7 = weekly seasonality of daily traffic)
SEASONAL_PERIOD = 7

# Forecast horizon (number of days ahead)
FORECAST_DAYS = 14

# Lag horizon for residual portmanteau tests
DIAGNOSTICS_LAG = 18

# Significance level for white-noise tests and ACF/PACF spike detection
SIGNIFICANCE_LEVEL = 0.05

# Box-Cox lambda search interval and grid density
TRANSFORM_SEARCH_RANGE = (-2.0, 2.0)
TRANSFORM_GRID_SIZE = 401

# Minimum length of the differenced series (enough for a lag-100 ACF)
MIN_STATIONARY_LENGTH = 100

# Relative variance drop a differencing step must achieve to not count as overdifferencing
MIN_VARIANCE_REDUCTION = 0.05

# Maximum optimizer iterations per SARIMA candidate
MAX_ITER = 200

# Number of standard errors for forecast interval bounds
INTERVAL_SE = 2.0
