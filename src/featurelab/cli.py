"""Command-line interface for featurelab."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

app = typer.Typer(
    name="featurelab",
    help="Feature experiment runner for rental-duration regression.",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration YAML file.",
        exists=True,
        dir_okay=False,
    ),
]


@app.command()
def features() -> None:
    """List registered features and whether they are prediction-safe."""
    from featurelab.features.definitions import get_registry

    registry = get_registry()

    table = Table(title="Registered features")
    table.add_column("Name", style="cyan")
    table.add_column("Validity")
    table.add_column("Description", style="dim")

    for name in registry.list_features():
        spec = registry.build(name)
        style = "green" if spec.prediction_safe else "yellow"
        table.add_row(name, f"[{style}]{spec.validity.value}[/{style}]", spec.description)

    console.print(table)


@app.command()
def aggregate(
    config: ConfigOption,
    group_by: Annotated[
        str,
        typer.Option("--group-by", "-g", help="Column or derived field (dayofweek, hourofday)."),
    ],
    function: Annotated[
        str,
        typer.Option("--function", "-f", help="count, avg, sum, min, max or median."),
    ] = "avg",
    field: Annotated[
        str,
        typer.Option("--field", help="Column to aggregate."),
    ] = "duration",
) -> None:
    """Run an exploratory aggregation query against the configured source."""
    from featurelab.config.loader import load_config
    from featurelab.errors import ExperimentError
    from featurelab.ingestion.aggregation import (
        AggregateFunction,
        AggregationSpec,
        DatasetAccessor,
    )
    from featurelab.ingestion.base import CsvSource
    from featurelab.utils.logging import configure_logging

    runner_config = load_config(config)
    configure_logging(runner_config.logging.level, runner_config.logging.json_output)

    try:
        spec = AggregationSpec(
            source=runner_config.source.table,
            group_by=group_by,
            function=AggregateFunction(function.lower()),
            field=field,
        )
        accessor = DatasetAccessor(
            [CsvSource(runner_config.source.table, runner_config.source.path)]
        )
        rows = list(accessor.query(spec))
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    except ExperimentError as e:
        console.print(f"[red]Query failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"{function.upper()}({field}) by {group_by}")
    table.add_column(group_by, style="cyan")
    table.add_column(f"{function}_{field}", style="green", justify="right")
    for row in rows:
        table.add_row(str(row.key), f"{row.value:,.2f}")

    console.print(table)


@app.command()
def run(
    config: ConfigOption,
    no_mlflow: Annotated[
        bool,
        typer.Option("--no-mlflow", help="Skip MLflow logging."),
    ] = False,
) -> None:
    """Train and evaluate every configured transform set and report the best."""
    from featurelab.config.loader import load_config
    from featurelab.errors import ExperimentError
    from featurelab.evaluation.experiment import ExperimentState
    from featurelab.pipeline import build_session
    from featurelab.utils.logging import configure_logging

    runner_config = load_config(config)
    configure_logging(runner_config.logging.level, runner_config.logging.json_output)

    if not runner_config.transform_sets:
        console.print("[red]Error: config defines no transform_sets[/red]")
        raise typer.Exit(code=1)

    console.print(f"[blue]Project: {runner_config.project}[/blue]")
    console.print(f"[dim]Source: {runner_config.source.path}[/dim]")

    try:
        with build_session(runner_config, use_mlflow=False if no_mlflow else None) as session:
            experiments = session.run()
            ranking = session.tracker.ranking()
            explanation = session.tracker.explain() if len(session.tracker) else None
    except (ExperimentError, ValueError, KeyError) as e:
        console.print(f"[red]Run failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    status_table = Table(title="Experiments")
    status_table.add_column("Transform set", style="cyan")
    status_table.add_column("State")
    status_table.add_column("Error", style="red")
    for exp in experiments:
        style = "green" if exp.state is ExperimentState.EVALUATED else "red"
        status_table.add_row(
            exp.transform_set.name,
            f"[{style}]{exp.state.value}[/{style}]",
            escape(exp.error or ""),
        )
    console.print(status_table)

    if explanation is None:
        console.print("[red]No experiment was evaluated[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Ranking by {runner_config.evaluation.metric}")
    table.add_column("Rank", justify="right")
    table.add_column("Transform set", style="cyan")
    table.add_column("Features", style="dim")
    table.add_column("Value", style="green", justify="right")
    for row in ranking.itertuples(index=False):
        table.add_row(str(row.rank), row.transform_set, row.features, f"{row.value:,.2f}")
    console.print(table)

    console.print(f"\n[green]Best: {escape(explanation)}[/green]")


if __name__ == "__main__":
    app()
