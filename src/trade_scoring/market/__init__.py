"""Market data collaborators (candle providers, session calendar)."""
