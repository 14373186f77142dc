# scripts/backtest.py
"""
CLI script for running backtests.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

import click
from tradesim.utils.config_loader import load_config, get_default_config
from tradesim.utils.logging_config import setup_logging
from tradesim.data.csv_loader import load_price_directory
from tradesim.data.synthetic_data import SyntheticDataProvider
from tradesim.core.backtest_engine import BacktestEngine
from tradesim.core.risk_manager import RiskManager
from tradesim.core.risk_model import HistoricalRiskModel
from tradesim.strategies.ma_cross import MovingAverageCrossStrategy


@click.command()
@click.option('--config', '-c', default=None, help='Configuration file path (defaults to built-in settings)')
@click.option('--data-dir', '-d', default=None, help='Directory of {SYMBOL}.csv price files')
@click.option('--seed', default=42, show_default=True, help='Seed for synthetic data when no data directory is given')
@click.option('--benchmark', default=None, help='Symbol used as the market for beta estimates')
@click.option('--no-risk', is_flag=True, help='Run without the risk manager')
@click.option('--output', '-o', default=None, help='Output directory for results')
@click.option('--verbose', '-v', is_flag=True, help='Verbose logging')
def main(config, data_dir, seed, benchmark, no_risk, output, verbose):
    """Run a moving average crossover backtest from the command line."""

    try:
        # Load configuration
        if config:
            click.echo(f"Loading configuration from {config}")
            app_config = load_config(config)
        else:
            app_config = get_default_config()

        # Setup logging
        log_level = "DEBUG" if verbose else None
        setup_logging(app_config.logging, level=log_level)

        backtest_config = app_config.backtest

        # Get market data
        if data_dir:
            click.echo(f"Loading price files from {data_dir}")
            price_series = load_price_directory(data_dir)
        else:
            click.echo("Using synthetic data")
            data_provider = SyntheticDataProvider(seed=seed)
            price_series = data_provider.generate_universe(
                data_provider.get_sample_symbols(),
                backtest_config.start_date,
                backtest_config.end_date
            )

        if not any(price_series.values()):
            click.echo("ERROR: No market data available", err=True)
            sys.exit(1)

        click.echo(f"Loaded {sum(len(bars) for bars in price_series.values())} bars for {len(price_series)} symbols")

        strategy = MovingAverageCrossStrategy(
            fast_window=app_config.strategy.fast_window,
            slow_window=app_config.strategy.slow_window,
            name=app_config.strategy.type
        )

        risk_manager = None
        if not no_risk:
            risk_manager = RiskManager(
                limits=app_config.risk,
                initial_capital=backtest_config.initial_capital,
                risk_model=HistoricalRiskModel(price_series, benchmark=benchmark)
            )

        engine = BacktestEngine(backtest_config, risk_manager=risk_manager)

        # Run backtest
        click.echo("Running backtest...")
        result = engine.run_backtest(strategy, price_series)

        # Display results
        click.echo("\n" + "="*50)
        click.echo("BACKTEST RESULTS")
        click.echo("="*50)

        metrics = result.metrics
        statistics = result.statistics
        click.echo(f"Total Return: {metrics.total_return:,.2f} ({metrics.total_return_pct:.2f}%)")
        click.echo(f"Annualized Return: {statistics.annualized_return:.2f}%")
        click.echo(f"Max Drawdown: {metrics.max_drawdown:.2f}%")
        click.echo(f"Sharpe Ratio: {metrics.sharpe_ratio:.3f}")
        click.echo(f"Sortino Ratio: {metrics.sortino_ratio:.3f}")
        click.echo(f"Calmar Ratio: {metrics.calmar_ratio:.3f}")
        click.echo(f"Closed Trades: {statistics.total_trades}")
        click.echo(f"Win Rate: {metrics.win_rate:.1f}%")
        click.echo(f"Profit Factor: {metrics.profit_factor:.2f}")
        click.echo(f"Expectancy: {metrics.expectancy:,.2f}")
        if statistics.unresolved_positions:
            click.echo(f"Open Positions: {', '.join(statistics.unresolved_positions)}")
        if result.warnings:
            click.echo(f"Warnings: {len(result.warnings)} (see log for details)")
        if risk_manager is not None:
            status = risk_manager.get_risk_status()
            click.echo(f"Risk State: {status.state.value} (score {status.risk_score:.1f}, {len(status.alerts)} alerts)")

        # Save results
        if output:
            output_dir = Path(output)
            output_dir.mkdir(parents=True, exist_ok=True)

            # Save JSON
            json_path = output_dir / f"{app_config.run_id}_results.json"
            result.save_to_json(str(json_path))

            # Save trades CSV
            csv_path = output_dir / f"{app_config.run_id}_trades.csv"
            result.save_to_csv(str(csv_path))

            click.echo(f"\nResults saved to:")
            click.echo(f"  JSON: {json_path}")
            click.echo(f"  CSV:  {csv_path}")

        click.echo(f"\nRun ID: {app_config.run_id}")
        click.echo("Backtest completed successfully!")

    except Exception as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
