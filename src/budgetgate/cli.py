"""
Budget Gate CLI
Command-line tools for inspecting budgets and simulating load.
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from budgetgate.budget import (
    DEFAULT_BUDGETS,
    AdmissionController,
    BudgetError,
    RequestType,
    derived_rules_for,
    load_budget_configs,
)

console = Console()


def build_controller(config_path: Optional[str]) -> AdmissionController:
    """Create an initialized controller from a config file or the defaults."""
    configs = load_budget_configs(config_path) if config_path else DEFAULT_BUDGETS
    controller = AdmissionController()
    controller.initialize(configs, derived_rules_for(configs))
    return controller


@click.group()
@click.option("--config", "-c", "config_path", envvar="BUDGET_CONFIG_PATH",
              type=click.Path(dir_okay=False), help="Budget config JSON file")
@click.option("--verbose", "-v", is_flag=True, help="Log deferred requests and ticks")
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """Budget Gate CLI - multi-budget admission control."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--callers", "-n", default=0, type=click.IntRange(min=0),
              help="Active caller count used for rates and ceilings")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def defaults(ctx, callers: int, as_json: bool):
    """Show configured budgets with effective rates and ceilings."""
    try:
        controller = build_controller(ctx.obj["config_path"])
    except BudgetError as e:
        console.print(f"❌ [red]Error: {e}[/red]")
        sys.exit(1)

    snapshot = controller.pool.snapshot(callers)

    if as_json:
        click.echo(json.dumps(snapshot, indent=2))
        return

    table = Table(title=f"Budgets ({callers} callers)")
    table.add_column("Request type", style="cyan")
    table.add_column("Level", justify="right", style="green")
    table.add_column("Rate/s", justify="right")
    table.add_column("Ceiling", justify="right")
    table.add_column("Derived from", style="dim")

    for name, info in snapshot.items():
        table.add_row(
            name,
            str(info["level"]),
            f"{info['rate']:g}",
            f"{info['ceiling']:g}",
            ", ".join(info["derived_from"]) if info["derived_from"] else "-",
        )

    console.print(table)


async def _simulate(
    controller: AdmissionController,
    request_types: list[RequestType],
    callers: int,
    ticks: int,
    requests: int,
    interval: float,
) -> list[dict]:
    rows = []
    tasks: list[asyncio.Task] = []

    for tick in range(1, ticks + 1):
        for i in range(requests):
            key = f"tick{tick}-req{i}"
            tasks.append(asyncio.create_task(
                controller.acquire_all_blocking(key, request_types)
            ))
        # Let every new request reach the controller before the tick
        await asyncio.sleep(0)

        granted = await controller.tick(interval, callers)
        await asyncio.sleep(0)
        rows.append({
            "tick": tick,
            "granted": granted,
            "waiting": controller.queue_depth,
            "levels": {t.value: controller.level(t) for t in request_types},
        })

    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    return rows


@cli.command()
@click.option("--callers", "-n", default=0, type=click.IntRange(min=0), help="Active callers")
@click.option("--ticks", "-t", default=10, type=click.IntRange(min=1), help="Ticks to run")
@click.option("--requests", "-r", default=50, type=click.IntRange(min=0),
              help="Blocking acquisitions issued per tick")
@click.option("--types", "type_names", default="get",
              help="Comma-separated request types each acquisition needs")
@click.option("--interval", default=1.0, type=click.FloatRange(min=0),
              help="Simulated seconds per tick")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def simulate(ctx, callers: int, ticks: int, requests: int, type_names: str,
             interval: float, as_json: bool):
    """Simulate load against the budgets without real time passing."""
    try:
        controller = build_controller(ctx.obj["config_path"])
        request_types = [
            RequestType.parse(name.strip())
            for name in type_names.split(",") if name.strip()
        ]
        if not request_types:
            raise click.BadParameter("at least one request type is required",
                                     param_hint="--types")
        for request_type in request_types:
            if not controller.pool.is_known(request_type):
                raise click.BadParameter(f"no budget configured for {request_type}",
                                         param_hint="--types")
        rows = asyncio.run(_simulate(
            controller, request_types, callers, ticks, requests, interval
        ))
    except BudgetError as e:
        console.print(f"❌ [red]Error: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title=f"Simulation ({requests} requests/tick, {callers} callers)")
    table.add_column("Tick", justify="right", style="dim")
    table.add_column("Granted", justify="right", style="green")
    table.add_column("Waiting", justify="right", style="yellow")
    for request_type in request_types:
        table.add_column(request_type.value, justify="right")

    for row in rows:
        table.add_row(
            str(row["tick"]),
            str(row["granted"]),
            str(row["waiting"]),
            *(str(row["levels"][t.value]) for t in request_types),
        )

    console.print(table)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
