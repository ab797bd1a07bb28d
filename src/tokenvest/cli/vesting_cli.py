#!/usr/bin/env python3
"""
tokenvest CLI - operate a persisted vesting ledger

Provides commands for:
- Deploying a token and funding the ledger's custody (init)
- Creating, releasing and revoking vesting schedules
- Inspecting schedules and ledger accounting
- Withdrawing unallocated custody
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import click
    from rich import box
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table
except ImportError:
    print("ERROR: Required packages not installed. Install with:")
    print("  pip install click rich")
    sys.exit(1)

from tokenvest.core.config import ConfigManager, ConfigurationError
from tokenvest.core.contracts.erc20 import ERC20Token, TokenCustody, TokenError
from tokenvest.core.logging_config import setup_logging_from_config
from tokenvest.core.vesting_exceptions import VestingError, get_error_context
from tokenvest.core.vesting_ledger import STORAGE_KEY, VestingLedger
from tokenvest.database.storage_manager import StorageManager

logger = logging.getLogger(__name__)
console = Console()

TOKEN_KEY = "token"


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, extra={"event": "cli.error", **get_error_context(exc)})
    console.print(f"[bold red]Error:[/] {type(exc).__name__}: {exc}")
    sys.exit(exit_code)


class LedgerSession:
    """Token and ledger loaded from a data directory, saved back on commit."""

    def __init__(self, storage: StorageManager, token: ERC20Token, ledger: VestingLedger):
        self.storage = storage
        self.token = token
        self.ledger = ledger

    @classmethod
    def open(cls, db_path: Path, config: ConfigManager, now: Optional[int]) -> "LedgerSession":
        if not db_path.exists():
            raise click.ClickException(f"No ledger at {db_path}; run `tokenvest init` first.")
        storage = StorageManager(db_path)
        token_data = storage.get(TOKEN_KEY)
        ledger_data = storage.get(STORAGE_KEY)
        if token_data is None or ledger_data is None:
            storage.close()
            raise click.ClickException(f"No ledger at {db_path}; run `tokenvest init` first.")

        token = ERC20Token.from_dict(token_data)
        custody = TokenCustody(token, ledger_data["address"])
        ledger = VestingLedger.from_dict(
            ledger_data,
            custody,
            policy=config.policy,
            time_provider=_time_provider(now),
        )
        return cls(storage, token, ledger)

    def commit(self) -> None:
        self.storage.set_many({TOKEN_KEY: self.token.to_dict(), STORAGE_KEY: self.ledger.to_dict()})

    def close(self) -> None:
        self.storage.close()


def _time_provider(now: Optional[int]):
    if now is None:
        return lambda: int(time.time())
    return lambda: now


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    """Emit a payload honoring the global --json-output flag."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED, title=title)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key.replace('_', ' ').title()}[/]", str(value))
    console.print(Panel(table, border_style="cyan"))


def _schedule_rows(ledger: VestingLedger, beneficiary: str) -> List[Dict[str, Any]]:
    rows = []
    for schedule in ledger.get_schedules(beneficiary):
        row = schedule.to_dict()
        row["releasable"] = 0 if schedule.revoked else ledger.releasable_amount(beneficiary, schedule.index)
        rows.append(row)
    return rows


def _run(ctx: click.Context, action, title: str, commit: bool = True) -> None:
    """Open the ledger, apply ``action`` and persist the result."""
    session = LedgerSession.open(ctx.obj["db_path"], ctx.obj["config"], ctx.obj["now"])
    try:
        payload = action(session.ledger, session.token)
        if commit:
            session.commit()
    except (VestingError, TokenError) as exc:
        _cli_fail(exc)
        return
    finally:
        session.close()
    _emit(ctx, payload, title)


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    '--data-dir',
    type=click.Path(file_okay=False, path_type=Path),
    envvar='TOKENVEST_DATA_DIR',
    help='Directory holding ledger.db (defaults to the storage.data_dir setting).',
)
@click.option(
    '--environment',
    envvar='TOKENVEST_ENVIRONMENT',
    default=None,
    help='Configuration environment (development, production, test).',
)
@click.option(
    '--config-dir',
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    help='Directory with default.yaml and <environment>.yaml.',
)
@click.option('--at', 'now', type=int, default=None, help='Evaluate the command at this UNIX time.')
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.pass_context
def cli(
    ctx: click.Context,
    data_dir: Optional[Path],
    environment: Optional[str],
    config_dir: Optional[Path],
    now: Optional[int],
    json_output: bool,
):
    """
    tokenvest - token vesting ledger

    Grants tokens to beneficiaries on cliff-and-linear schedules and
    releases them from the ledger's custody as they vest.
    """
    ctx.ensure_object(dict)
    try:
        config = ConfigManager(
            environment=environment,
            config_dir=str(config_dir) if config_dir else None,
        )
    except ConfigurationError as exc:
        raise click.ClickException(str(exc))
    setup_logging_from_config(config)

    if data_dir is not None:
        db_path = Path(data_dir).expanduser() / config.storage.database_file
    else:
        db_path = config.storage.database_path

    ctx.obj['config'] = config
    ctx.obj['db_path'] = db_path
    ctx.obj['now'] = now
    ctx.obj['json_output'] = json_output


@cli.command("init")
@click.option('--owner', required=True, help='Owner of the token and the ledger.')
@click.option('--name', default='Vesting Token', show_default=True)
@click.option('--symbol', default='VEST', show_default=True)
@click.option('--supply', type=click.IntRange(min=1), required=True, help='Tokens minted to the owner.')
@click.option('--fund', type=click.IntRange(min=0), default=0, show_default=True,
              help='Tokens moved from the owner into ledger custody.')
@click.option('--treasury', default=None, help='Refund recipient on revocation (defaults to owner).')
@click.pass_context
def init_ledger(ctx: click.Context, owner: str, name: str, symbol: str, supply: int, fund: int,
                treasury: Optional[str]):
    """Deploy a token and an empty ledger into the data directory."""
    db_path: Path = ctx.obj["db_path"]
    with StorageManager(db_path) as storage:
        if storage.get(STORAGE_KEY) is not None:
            raise click.ClickException(f"A ledger already exists at {db_path}.")

        try:
            token = ERC20Token(name=name, symbol=symbol, owner=owner)
            custody = TokenCustody(token, VestingLedger.derive_address(owner.lower(), salt=token.address))
            ledger = VestingLedger(
                custody,
                owner,
                policy=ctx.obj["config"].policy,
                time_provider=_time_provider(ctx.obj["now"]),
                treasury=treasury,
            )
            token.mint(owner, owner, supply)
            if fund:
                token.transfer(owner, ledger.address, fund)
        except (VestingError, TokenError) as exc:
            _cli_fail(exc)
            return

        storage.set_many({TOKEN_KEY: token.to_dict(), STORAGE_KEY: ledger.to_dict()})

    _emit(ctx, {
        "token": token.address,
        "ledger": ledger.address,
        "owner": ledger.owner,
        "supply": supply,
        "custody": fund,
    }, "Ledger Initialized")


@cli.command("fund")
@click.option('--caller', required=True, help='Token holder sending funds to custody.')
@click.option('--amount', type=click.IntRange(min=1), required=True)
@click.pass_context
def fund_ledger(ctx: click.Context, caller: str, amount: int):
    """Move tokens from a holder into ledger custody."""
    def action(ledger: VestingLedger, token: ERC20Token):
        token.transfer(caller, ledger.address, amount)
        return {"funded": amount, **ledger.accounting_report()}

    _run(ctx, action, "Custody Funded")


@cli.command("create")
@click.option('--caller', required=True, help='Ledger owner creating the grant.')
@click.option('--beneficiary', required=True)
@click.option('--total', type=int, required=True, help='Tokens granted.')
@click.option('--duration', type=int, required=True, help='Vesting window in seconds.')
@click.option('--start', type=int, default=None, help='Start time (UNIX seconds, defaults to now).')
@click.option('--cliff-offset', type=int, default=0, show_default=True,
              help='Seconds after start before anything vests.')
@click.option('--slice-interval', type=int, default=None,
              help='Accrual granularity in seconds (defaults to policy.default_slice_interval).')
@click.option('--irrevocable', is_flag=True, help='Create the schedule as non-revocable.')
@click.pass_context
def create_schedule(ctx: click.Context, caller: str, beneficiary: str, total: int, duration: int,
                    start: Optional[int], cliff_offset: int, slice_interval: Optional[int],
                    irrevocable: bool):
    """Create a vesting schedule."""
    def action(ledger: VestingLedger, token: ERC20Token):
        begin = start if start is not None else ledger.now()
        interval = slice_interval if slice_interval is not None else ledger.policy.default_slice_interval
        index = ledger.create_schedule(
            caller,
            beneficiary,
            start=begin,
            cliff=begin + cliff_offset,
            duration=duration,
            total=total,
            revocable=not irrevocable,
            slice_interval=interval,
        )
        schedule = ledger.get_schedule(beneficiary, index)
        return {"index": index, **schedule.to_dict()}

    _run(ctx, action, "Vesting Schedule Created")


@cli.command("release")
@click.option('--caller', required=True)
@click.option('--beneficiary', required=True)
@click.option('--index', type=int, default=0, show_default=True)
@click.pass_context
def release_schedule(ctx: click.Context, caller: str, beneficiary: str, index: int):
    """Release the vested amount of a schedule to its beneficiary."""
    def action(ledger: VestingLedger, token: ERC20Token):
        amount = ledger.release(caller, beneficiary, index)
        return {
            "beneficiary": beneficiary.lower(),
            "index": index,
            "released": amount,
            "balance": token.balance_of(beneficiary),
        }

    _run(ctx, action, "Tokens Released")


@cli.command("revoke")
@click.option('--caller', required=True)
@click.option('--beneficiary', required=True)
@click.option('--index', type=int, default=0, show_default=True)
@click.pass_context
def revoke_schedule(ctx: click.Context, caller: str, beneficiary: str, index: int):
    """Revoke a schedule, paying the vested slice and refunding the rest."""
    def action(ledger: VestingLedger, token: ERC20Token):
        released_now, refund = ledger.revoke(caller, beneficiary, index)
        return {
            "beneficiary": beneficiary.lower(),
            "index": index,
            "released_now": released_now,
            "refund": refund,
            "treasury": ledger.treasury,
        }

    _run(ctx, action, "Vesting Schedule Revoked")


@cli.command("withdraw")
@click.option('--caller', required=True)
@click.option('--amount', type=int, required=True)
@click.option('--to', 'recipient', default=None)
@click.pass_context
def withdraw(ctx: click.Context, caller: str, amount: int, recipient: Optional[str]):
    """Withdraw custody tokens not claimed by any schedule."""
    def action(ledger: VestingLedger, token: ERC20Token):
        ledger.withdraw(caller, amount, to=recipient)
        return {"withdrawn": amount, **ledger.accounting_report()}

    _run(ctx, action, "Tokens Withdrawn")


@cli.command("show")
@click.option('--beneficiary', required=True)
@click.pass_context
def show(ctx: click.Context, beneficiary: str):
    """List a beneficiary's schedules with their releasable amounts."""
    session = LedgerSession.open(ctx.obj["db_path"], ctx.obj["config"], ctx.obj["now"])
    try:
        rows = _schedule_rows(session.ledger, beneficiary)
    finally:
        session.close()

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"beneficiary": beneficiary.lower(), "schedules": rows}, indent=2))
        return

    table = Table(title=f"Vesting schedules for {beneficiary}", box=box.ROUNDED)
    for column in ("Index", "Total", "Released", "Releasable", "Start", "Cliff", "Duration", "State"):
        table.add_column(column)
    for row in rows:
        state = "revoked" if row["revoked"] else ("revocable" if row["revocable"] else "fixed")
        table.add_row(
            str(row["index"]),
            str(row["total"]),
            str(row["released"]),
            str(row["releasable"]),
            str(row["start"]),
            str(row["cliff"]),
            str(row["duration"]),
            state,
        )
    console.print(table)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show ledger accounting: allocation, custody and withdrawable balance."""
    def action(ledger: VestingLedger, token: ERC20Token):
        return {
            "ledger": ledger.address,
            "owner": ledger.owner,
            "token": token.symbol,
            "beneficiaries": len(ledger.beneficiaries()),
            "schedules": len(ledger.store),
            **ledger.accounting_report(),
        }

    _run(ctx, action, "Ledger Status", commit=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
