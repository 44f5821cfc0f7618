"""Scoring, forecasting and market rating engines."""
