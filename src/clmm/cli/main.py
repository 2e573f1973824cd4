"""
CLMM command-line interface.

Commands:
    clmm tick-to-price TICK
    clmm price-to-tick SQRT_PRICE_X64 [--tick-spacing N]
    clmm simulate SCENARIO.yaml [--metrics]

``simulate`` replays a YAML scenario (pool setup, balances and a list of
steps) against an in-memory token bank and reports each step's outcome.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from prometheus_client import CollectorRegistry, generate_latest
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clmm.core.amm_exceptions import AMMError, error_code_of
from clmm.core.api.dex_metrics import PoolMetrics
from clmm.core.config import ENVIRONMENT, FeeTier
from clmm.core.defi.concentrated_liquidity import ConcentratedLiquidityPool
from clmm.core.defi.fixed_point import (
    price_from_sqrt_price,
    snap_tick_to_spacing,
    sqrt_price_to_tick,
    tick_to_sqrt_price,
)
from clmm.core.defi.token_bank import InMemoryTokenBank
from clmm.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _emit_payload(ctx: click.Context, payload: dict[str, Any], title: str) -> None:
    """Emit a flat payload honoring the global --json-output flag."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED, title=title)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key.replace('_', ' ').title()}[/]", str(value))
    console.print(Panel(table, border_style="cyan"))


def _read_scenario(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise click.ClickException(f"Scenario file {path} must contain a mapping.")
    if "pool" not in data:
        raise click.ClickException(f"Scenario file {path} has no 'pool' section.")
    return data


# ==================== Scenario Runner ====================

def _run_step(pool: ConcentratedLiquidityPool, step: dict[str, Any]) -> dict[str, Any]:
    action = step.get("action")
    if action == "add_liquidity":
        state = pool.state
        liquidity, amount_a, amount_b = pool.add_liquidity(
            step["owner"],
            step.get("token_a", state.token_a),
            step.get("token_b", state.token_b),
            int(step.get("amount_a", 0)),
            int(step.get("amount_b", 0)),
            int(step.get("amount_a_min", 0)),
            int(step.get("amount_b_min", 0)),
            int(step["lower_tick"]),
            int(step["upper_tick"]),
        )
        return {"liquidity": liquidity, "amount_a": amount_a, "amount_b": amount_b}

    if action == "remove_liquidity":
        liquidity = step.get("liquidity", "all")
        if liquidity == "all":
            position = pool.positions.require(step["owner"], int(step["lower_tick"]), int(step["upper_tick"]))
            liquidity = position.liquidity
        amount_a, amount_b = pool.remove_liquidity(
            step["owner"],
            int(step["lower_tick"]),
            int(step["upper_tick"]),
            int(liquidity),
            int(step.get("amount_a_min", 0)),
            int(step.get("amount_b_min", 0)),
        )
        return {"liquidity": int(liquidity), "amount_a": amount_a, "amount_b": amount_b}

    if action in ("swap", "swap_exact_output", "preview"):
        state = pool.state
        token_in = step["token_in"]
        token_out = step.get("token_out", state.token_b if token_in == state.token_a else state.token_a)
        limit = int(step.get("sqrt_price_limit_x64", 0))
        if action == "swap":
            amount_out = pool.swap(
                step["caller"], token_in, token_out, int(step["amount_in"]),
                int(step.get("min_amount_out", 0)), limit,
            )
            return {"amount_out": amount_out, "tick": pool.state.current_tick}
        if action == "swap_exact_output":
            amount_in = pool.swap_exact_output(
                step["caller"], token_in, token_out, int(step["amount_out"]),
                int(step["max_amount_in"]), limit,
            )
            return {"amount_in": amount_in, "tick": pool.state.current_tick}
        preview = pool.preview_swap(token_in, token_out, int(step["amount_in"]), limit)
        if not preview.is_valid:
            return {"is_valid": False, "error_code": preview.error_code}
        return {
            "amount_out": preview.amount_out,
            "fee_paid": preview.fee_paid,
            "price_impact_bps": preview.price_impact_bps,
        }

    if action == "collect":
        amount_a, amount_b = pool.collect(
            step["owner"],
            int(step["lower_tick"]),
            int(step["upper_tick"]),
            int(step.get("amount_a", 2**128 - 1)),
            int(step.get("amount_b", 2**128 - 1)),
        )
        return {"amount_a": amount_a, "amount_b": amount_b}

    if action == "collect_protocol":
        amount_a, amount_b = pool.collect_protocol(
            step.get("admin", pool.state.admin),
            int(step.get("amount_a", 2**128 - 1)),
            int(step.get("amount_b", 2**128 - 1)),
        )
        return {"amount_a": amount_a, "amount_b": amount_b}

    raise click.ClickException(f"Unknown scenario action: {action!r}")


def run_scenario(
    scenario: dict[str, Any],
    metrics: PoolMetrics | None = None,
) -> tuple[ConcentratedLiquidityPool, InMemoryTokenBank, list[dict[str, Any]]]:
    """
    Build a pool from a scenario mapping and execute its steps in order.

    A failing step is recorded with its error code and the run continues.
    A step may declare ``expect_error: CODE``; it then passes only if it
    fails with that code.

    Returns:
        (pool, bank, step reports)
    """
    pool_cfg = scenario["pool"]
    bank = InMemoryTokenBank()
    pool = ConcentratedLiquidityPool(token_bank=bank, metrics=metrics)

    # A named fee tier supplies fee and spacing defaults; explicit keys win
    tier = FeeTier[str(pool_cfg.get("fee_tier", "STANDARD")).upper()]
    initial_tick = int(pool_cfg.get("initial_tick", 0))
    pool.initialize(
        admin=pool_cfg.get("admin", "admin"),
        token_a=pool_cfg["token_a"],
        token_b=pool_cfg["token_b"],
        fee_bps=int(pool_cfg.get("fee_bps", tier.fee_bps)),
        protocol_fee_bps=int(pool_cfg.get("protocol_fee_bps", 0)),
        initial_sqrt_price=int(pool_cfg.get("initial_sqrt_price", tick_to_sqrt_price(initial_tick))),
        initial_tick=initial_tick,
        tick_spacing=int(pool_cfg.get("tick_spacing", tier.tick_spacing)),
    )

    for holder, holdings in (scenario.get("balances") or {}).items():
        for token, amount in holdings.items():
            bank.mint(token, holder, int(amount))

    reports = []
    for index, step in enumerate(scenario.get("steps") or [], start=1):
        expected = step.get("expect_error")
        report: dict[str, Any] = {"step": index, "action": step.get("action")}
        try:
            report["result"] = _run_step(pool, step)
            report["status"] = "unexpected_success" if expected else "ok"
        except AMMError as exc:
            code = error_code_of(exc)
            report["error_code"] = code
            report["error"] = exc.message
            report["status"] = "ok" if expected == code else "error"
        reports.append(report)

    pool.verify_invariants()
    return pool, bank, reports


# ==================== Commands ====================

@click.group()
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.option(
    '--log-level',
    default='WARNING',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    help='Engine log level (JSON logs go to stderr)',
)
@click.pass_context
def cli(ctx: click.Context, json_output: bool, log_level: str) -> None:
    """CLMM - concentrated-liquidity AMM engine tools."""
    ctx.ensure_object(dict)
    ctx.obj['json_output'] = json_output
    setup_logging(name="clmm", level=log_level, environment=ENVIRONMENT)


@cli.command('tick-to-price')
@click.argument('tick', type=int)
@click.pass_context
def tick_to_price(ctx: click.Context, tick: int) -> None:
    """Convert a tick to its Q64.64 sqrt price and float price."""
    try:
        sqrt_price = tick_to_sqrt_price(tick)
    except AMMError as exc:
        _cli_fail(exc)
        return
    _emit_payload(
        ctx,
        {"tick": tick, "sqrt_price_x64": sqrt_price, "price": price_from_sqrt_price(sqrt_price)},
        "Tick → Price",
    )


@cli.command('price-to-tick')
@click.argument('sqrt_price_x64', type=int)
@click.option('--tick-spacing', type=int, default=None, help='Also report the usable tick at or below')
@click.pass_context
def price_to_tick(ctx: click.Context, sqrt_price_x64: int, tick_spacing: int | None) -> None:
    """Convert a Q64.64 sqrt price to the greatest tick at or below it."""
    try:
        tick = sqrt_price_to_tick(sqrt_price_x64)
    except AMMError as exc:
        _cli_fail(exc)
        return
    payload: dict[str, Any] = {
        "sqrt_price_x64": sqrt_price_x64,
        "tick": tick,
        "price": price_from_sqrt_price(sqrt_price_x64),
    }
    if tick_spacing:
        payload["usable_tick"] = snap_tick_to_spacing(tick, tick_spacing)
    _emit_payload(ctx, payload, "Price → Tick")


@cli.command('simulate')
@click.argument('scenario', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--metrics', 'show_metrics', is_flag=True, help='Print Prometheus metrics after the run')
@click.pass_context
def simulate(ctx: click.Context, scenario: Path, show_metrics: bool) -> None:
    """Replay a YAML scenario against a fresh pool."""
    data = _read_scenario(scenario)
    registry = CollectorRegistry()
    try:
        pool, bank, reports = run_scenario(data, metrics=PoolMetrics(registry=registry))
    except (AMMError, KeyError, TypeError, ValueError) as exc:
        _cli_fail(exc)
        return

    failed = [r for r in reports if r["status"] != "ok"]
    pool_state = pool.get_pool_state()

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"steps": reports, "pool": pool_state}, indent=2, default=str))
    else:
        table = Table(title=f"Scenario {scenario.name}", box=box.ROUNDED)
        table.add_column("#", style="dim")
        table.add_column("Action", style="cyan")
        table.add_column("Status")
        table.add_column("Outcome", style="green")
        for report in reports:
            status_style = "green" if report["status"] == "ok" else "bold red"
            outcome = report.get("result") or f"{report.get('error_code')}: {report.get('error')}"
            table.add_row(
                str(report["step"]),
                str(report["action"]),
                f"[{status_style}]{report['status']}[/]",
                json.dumps(outcome, default=str) if isinstance(outcome, dict) else str(outcome),
            )
        console.print(table)

        summary = Table(show_header=False, box=box.ROUNDED, title="Pool")
        for key in ("tick", "sqrt_price", "price", "liquidity", "fee_growth_global_a",
                    "fee_growth_global_b", "protocol_fees_a", "protocol_fees_b"):
            summary.add_row(f"[bold cyan]{key.replace('_', ' ').title()}[/]", str(pool_state[key]))
        console.print(Panel(summary, border_style="cyan"))

    if show_metrics:
        click.echo(generate_latest(registry).decode("utf-8"))

    if failed:
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == '__main__':
    main()
