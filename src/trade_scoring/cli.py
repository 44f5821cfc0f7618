"""
Command line interface.

Usage:
    trade-scoring score AAPL
    trade-scoring score AAPL --csv bars.csv --json
    trade-scoring forecast AAPL
    trade-scoring market-rating
"""

import json
from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from trade_scoring.analysis.structural import warmup_jit
from trade_scoring.config import get_candle_provider, get_settings
from trade_scoring.domain.schemas import PriceHistory, Quote
from trade_scoring.engine.forecast import forecast_price
from trade_scoring.engine.market_rating import get_market_rating
from trade_scoring.engine.scorer import score_symbol
from trade_scoring.market.exceptions import MarketDataError
from trade_scoring.observability import configure_logging, log_execution_time

app = typer.Typer(help="Technical scoring, forecasting and market rating")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL for this run"
    ),
):
    """Configure logging before any command runs."""
    configure_logging(log_level or get_settings().LOG_LEVEL)


def _load_history(
    symbol: str, csv_path: Optional[Path], api_key: Optional[str]
) -> PriceHistory:
    """Read bars from a CSV (date index, OHLCV columns) or fetch them."""
    if csv_path is not None:
        df = pd.read_csv(csv_path, index_col=0, parse_dates=True)
        df.columns = [str(c).lower() for c in df.columns]
        return PriceHistory.from_frame(df.sort_index())
    provider = get_candle_provider(api_key)
    return provider.fetch_daily(symbol, get_settings().MARKET_HISTORY_DAYS)


def _history_or_exit(
    symbol: str, csv_path: Optional[Path], api_key: Optional[str]
) -> PriceHistory:
    try:
        history = _load_history(symbol, csv_path, api_key)
    except (MarketDataError, ValueError, OSError) as e:
        console.print(f"[bold red]Could not load data for {symbol}: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    if len(history) < 2:
        console.print(f"[bold red]Not enough bars for {symbol}[/bold red]")
        raise typer.Exit(code=1)
    return history


@app.command()
def score(
    symbol: str = typer.Argument(..., help="Ticker symbol, e.g. AAPL"),
    csv_path: Optional[Path] = typer.Option(
        None, "--csv", help="Score bars from a CSV instead of fetching"
    ),
    market_change: Optional[float] = typer.Option(
        None, "--market-change", help="Average market change today, in percent"
    ),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Finnhub token"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """
    Score a symbol's trade attractiveness (0-100).
    """
    warmup_jit()
    history = _history_or_exit(symbol, csv_path, api_key)
    quote = Quote.from_history(history)

    with log_execution_time(logger, "score", symbol=symbol):
        result = score_symbol(quote, history, market_change)

    if json_output:
        typer.echo(result.model_dump_json(indent=2))
        return

    console.print(
        f"[bold]{symbol}[/bold] score [bold]{result.score}[/bold] "
        f"({result.recommendation.value}), confidence {result.confidence}"
    )
    console.print(result.reasoning)

    table = Table(title="Signals")
    table.add_column("Direction")
    table.add_column("Source")
    table.add_column("Detail")
    for item in result.signals + result.warnings:
        color = {"bullish": "green", "bearish": "red"}.get(item.direction.value, "white")
        table.add_row(f"[{color}]{item.direction.value}[/{color}]", item.source, item.text)
    console.print(table)

    for pattern in result.patterns:
        console.print(f"Pattern: {pattern.type} ({pattern.confidence:.0f}%)")


@app.command()
def forecast(
    symbol: str = typer.Argument(..., help="Ticker symbol, e.g. AAPL"),
    csv_path: Optional[Path] = typer.Option(
        None, "--csv", help="Forecast from a CSV instead of fetching"
    ),
    horizon: int = typer.Option(7, "--horizon", min=1, max=30, help="Days ahead"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Finnhub token"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """
    Project a symbol's price with the forecast ensemble.
    """
    warmup_jit()
    history = _history_or_exit(symbol, csv_path, api_key)
    result = forecast_price(history.closes[-1], history, horizon_days=horizon)
    if result is None:
        console.print(f"[bold red]At least 20 bars are needed to forecast {symbol}[/bold red]")
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(result.model_dump_json(indent=2))
        return

    console.print(
        f"[bold]{symbol}[/bold] {result.current_price:.2f} -> "
        f"[bold]{result.predicted_price:.2f}[/bold] "
        f"({result.expected_change_percent:+.2f}%, {result.outlook.value}) "
        f"in {result.horizon_days}d, confidence {result.confidence}"
    )
    table = Table(title="Methods")
    table.add_column("Method")
    table.add_column("Predicted", justify="right")
    table.add_column("Confidence", justify="right")
    for prediction in result.individual_predictions:
        table.add_row(
            prediction.method,
            f"{prediction.predicted_price:.2f}",
            f"{prediction.confidence:.0f}",
        )
    console.print(table)
    console.print(f"Interval: {result.lower_bound:.2f} - {result.upper_bound:.2f}")


@app.command("market-rating")
def market_rating(
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Finnhub token"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore a fresh cache"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """
    Rate overall market sentiment from the index basket.
    """
    try:
        rating = get_market_rating(api_key=api_key, force_refresh=refresh)
    except ValueError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1) from e

    if json_output:
        typer.echo(json.dumps(rating.model_dump(mode="json"), indent=2))
        return

    age = ""
    if rating.cached:
        age = f" (cached {rating.cache_age_seconds:.0f}s ago{', stale' if rating.stale else ''})"
    console.print(
        f"Market [bold]{rating.sentiment.value}[/bold] {rating.rating}/100, "
        f"{rating.recommendation.value}, confidence {rating.confidence_label.value}"
        f", market {rating.market_status.value.lower()}{age}"
    )
    console.print(rating.advice)

    table = Table(title="Factors")
    table.add_column("Factor")
    table.add_column("Points", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Detail")
    for factor in rating.factors:
        table.add_row(
            factor.name, f"{factor.points:+.1f}", f"{factor.max_points:.0f}", factor.detail
        )
    console.print(table)
    for text in rating.signals:
        console.print(f"[green]+[/green] {text}")
    for text in rating.warnings:
        console.print(f"[red]-[/red] {text}")


if __name__ == "__main__":
    app()
