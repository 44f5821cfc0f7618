"""Trade scoring engine: indicators, patterns, composite scores, forecasts and market ratings."""
