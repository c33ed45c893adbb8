from __future__ import annotations

"""
tokendist.cli.main
------------------

Operator CLI for the token distributor:
- config:   print the effective distributor parameters (defaults, file, env).
- status:   show the committed config and recent cycles of an SQLite store.
- simulate: run one full cycle in memory over a holder snapshot and print
            each holder's reward plus the undistributed dust.

Examples
--------
# Effective parameters (honours TOKENDIST_CONFIG_FILE and TOKENDIST_* env)
tokendist config

# Inspect a store
tokendist status --db tokendist.db --history 5

# Preview a distribution of 1000 units over a snapshot
tokendist simulate holders.yaml --pool 1000 --json

# Same, keeping JSON logs and the metrics of the run
tokendist --log-file run.jsonl simulate holders.yaml --pool 1000 --metrics-out run.prom

A snapshot file is JSON or YAML, either a plain mapping of holder -> balance
or a mapping with a `holders` key holding one.
"""

import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
import yaml

from tokendist import config as tconfig
from tokendist import logging as tlog
from tokendist import metrics
from tokendist.config import DistributorParams
from tokendist.cycle.machine import Distributor
from tokendist.driver import CycleDriver, CycleReport
from tokendist.errors import DistributorError
from tokendist.ledger.memory import ManualClock, MemoryLedger
from tokendist.store.memory import MemoryStore
from tokendist.store.sqlite import SQLiteStore

app = typer.Typer(
    name="tokendist",
    add_completion=False,
    no_args_is_help=True,
    help="Proportional reward distribution to token holders.",
)

SIM_AUTHORITY = "authority"
SIM_MINT = "REWARD"
SIM_VAULT = "reward-vault"

# -------------------- utils --------------------


def _width(default: int = 100) -> int:
    try:
        return shutil.get_terminal_size((default, 20)).columns
    except (OSError, ValueError):
        return default


def _pad(s: str, n: int) -> str:
    if len(s) <= n:
        return s + " " * (n - len(s))
    if n <= 4:
        return s[:n]
    return s[: n - 1] + "…"


def _fail(err: Exception, code: int = 1) -> NoReturn:
    typer.secho(f"error: {err}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code)


def _params(config_file: Optional[Path]) -> DistributorParams:
    try:
        if config_file is not None:
            return tconfig.from_env(base=tconfig.from_file(config_file))
        return tconfig.load()
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        _fail(e, code=2)


def load_snapshot(path: Path) -> Dict[str, int]:
    """Read a holder -> balance snapshot from a JSON or YAML file."""
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if isinstance(data, dict) and isinstance(data.get("holders"), dict):
        data = data["holders"]
    if not isinstance(data, dict):
        raise ValueError(f"{path}: snapshot must be a mapping of holder -> balance")
    out: Dict[str, int] = {}
    for holder, bal in data.items():
        if isinstance(bal, bool) or not isinstance(bal, int) or bal < 0:
            raise ValueError(f"{path}: balance of {holder!r} must be a non-negative integer")
        out[str(holder)] = bal
    return out


def simulate_cycle(balances: Dict[str, int], pool: int, params: DistributorParams) -> CycleReport:
    """Run one full cycle over `balances` against an in-memory ledger and store."""
    clock = ManualClock(0)
    ledger = MemoryLedger()
    ledger.open_vault(SIM_MINT, SIM_VAULT, vault_authority=Distributor.vault_address(params))
    ledger.mint_to(SIM_MINT, SIM_VAULT, pool)
    ledger.load_balances(SIM_MINT, balances)

    dist = Distributor(MemoryStore(), ledger, clock)
    dist.initialize(authority=SIM_AUTHORITY, reward_mint=SIM_MINT, reward_vault=SIM_VAULT, params=params)
    clock.advance(params.distribution_interval)
    return CycleDriver(dist, ledger, SIM_AUTHORITY).run(list(balances))


# -------------------- printing --------------------


def _print_report(report: CycleReport, balances: Dict[str, int]) -> None:
    name_w = max(12, min(48, _width() - 40))
    typer.secho(_pad("HOLDER", name_w) + " " + _pad("BALANCE", 16) + " " + _pad("REWARD", 16), bold=True)
    for holder in sorted(balances):
        if holder in report.paid:
            reward = str(report.paid[holder])
        else:
            reward = report.skipped.get(holder, "-")
        typer.echo(_pad(holder, name_w) + " " + _pad(str(balances[holder]), 16) + " " + _pad(reward, 16))
    typer.echo("")
    typer.echo(f"eligible total : {report.total_eligible}")
    typer.echo(f"reward pool    : {report.reward_pool}")
    typer.echo(f"distributed    : {report.distributed}")
    typer.secho(f"dust           : {report.dust}", bold=True)


# -------------------- commands --------------------


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default: $TOKENDIST_LOG_LEVEL or INFO)."),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--log-text", help="Force JSON or text log lines."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write JSON log lines to this file."),
) -> None:
    tlog.configure(json=log_json, level=log_level, file_path=log_file)


@app.command("config")
def cmd_config(
    config_file: Optional[Path] = typer.Option(None, "--file", "-f", help="JSON/YAML parameters file."),
) -> None:
    """Print the effective distributor parameters."""
    typer.echo(tconfig.pretty(_params(config_file)))


@app.command("status")
def cmd_status(
    db: Path = typer.Option(..., "--db", help="Path to the distributor SQLite store."),
    history: int = typer.Option(5, min=0, max=1000, help="Number of recent cycles to list."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the committed config and recent cycles of a store."""
    if not db.exists():
        _fail(FileNotFoundError(f"no store at {db}"), code=2)
    try:
        store = SQLiteStore(str(db))
        try:
            state = store.load()
            cycles = store.list_cycles(limit=history) if history else []
        finally:
            store.close()
    except DistributorError as e:
        _fail(e)

    cfg = state.config
    if json_out:
        payload: Dict[str, Any] = {
            "config": cfg.to_dict() if cfg else None,
            "cycles": [c.to_dict() for c in cycles],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    if cfg is None:
        typer.echo("Distributor not initialized.")
        return

    typer.secho("Distributor:", bold=True)
    for key in ("authority", "reward_mint", "reward_vault", "vault_authority", "state",
                "cycle_id", "total_eligible_tokens", "last_distribution_at", "next_start_at"):
        value = cfg.state.value if key == "state" else getattr(cfg, key)
        typer.echo(f"  {_pad(key, 22)} {value}")
    if not cycles:
        return
    typer.echo("")
    typer.secho(
        _pad("CYCLE", 7) + " " + _pad("COUNTED", 8) + " " + _pad("PAID", 6) + " "
        + _pad("POOL", 16) + " " + _pad("DISTRIBUTED", 16) + " " + _pad("ENDED", 12),
        bold=True,
    )
    for c in cycles:
        typer.echo(
            _pad(str(c.cycle_id), 7) + " " + _pad(str(len(c.counted)), 8) + " "
            + _pad(str(len(c.paid)), 6) + " " + _pad(str(c.reward_pool if c.reward_pool is not None else "-"), 16)
            + " " + _pad(str(c.total_paid), 16) + " " + _pad(str(c.ended_at if c.ended_at is not None else "-"), 12)
        )


@app.command("simulate")
def cmd_simulate(
    snapshot: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON/YAML holder -> balance snapshot."),
    pool: int = typer.Option(..., "--pool", min=0, help="Reward pool X in base units."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON/YAML parameters file."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
    metrics_out: Optional[Path] = typer.Option(
        None, "--metrics-out", help="Write the Prometheus exposition of the run to this file."
    ),
) -> None:
    """Run one full distribution cycle in memory and print each holder's reward."""
    params = _params(config_file)
    try:
        balances = load_snapshot(snapshot)
    except (OSError, ValueError, yaml.YAMLError) as e:
        _fail(e, code=2)
    try:
        report = simulate_cycle(balances, pool, params)
    except DistributorError as e:
        _fail(e)

    if metrics_out is not None:
        metrics_out.write_bytes(metrics.render())
    if json_out:
        typer.echo(json.dumps(report.to_dict(), indent=2, sort_keys=True))
        return
    _print_report(report, balances)


def get_app() -> typer.Typer:
    return app


__all__: List[str] = ["app", "get_app", "load_snapshot", "simulate_cycle"]


if __name__ == "__main__":
    app()
