"""Console output for balance tracker commands.

Uses rich for the history and sync tables; raw exchange payloads are
printed as JSON.
"""

import json
from decimal import Decimal

from rich.console import Console
from rich.table import Table
from rich.text import Text

from balance_tracker.history_store import HistoryQuery
from balance_tracker.models import BalanceSource
from balance_tracker.reconciler import ReconciliationResult

console = Console()

_SOURCE_STYLES = {
    BalanceSource.MANUAL: "white",
    BalanceSource.BILL: "cyan",
    BalanceSource.FILL: "yellow",
    BalanceSource.CURRENT: "bold green",
}


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


def to_json(payload) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, cls=_DecimalEncoder)


def print_json(payload) -> None:
    console.print_json(to_json(payload))


def _format_balance(val: Decimal) -> str:
    return f"{val:,.2f}"


def print_history(result: HistoryQuery) -> None:
    """Print stored balance records, oldest first."""
    table = Table(title="Balance History", show_header=True, header_style="bold cyan")
    table.add_column("Timestamp", style="white", min_width=24)
    table.add_column("Date", min_width=10)
    table.add_column("Time", min_width=5)
    table.add_column("Balance", justify="right", min_width=12)
    table.add_column("Source", justify="center", min_width=8)
    table.add_column("Ref", style="dim")

    for record in result.records:
        if record.source == BalanceSource.FILL and record.estimated_pnl is not None:
            ref = f"trade {record.trade_id} (est. pnl {record.estimated_pnl})"
        elif record.bill_id:
            ref = f"bill {record.bill_id}"
        else:
            ref = ""
        table.add_row(
            record.timestamp,
            record.date,
            record.time,
            _format_balance(record.balance),
            Text(str(record.source), style=_SOURCE_STYLES.get(record.source, "white")),
            ref,
        )

    console.print(table)
    console.print(
        f"  Showing {result.filtered_count} of {result.total_count}  |  "
        f"Range: {result.start or '-'} .. {result.end or '-'}"
    )


def print_sync_result(result: ReconciliationResult) -> None:
    """Print a summary of a history reconstruction."""
    table = Table(title="History Sync", show_header=True, header_style="bold cyan")
    table.add_column("Field", style="white", min_width=20)
    table.add_column("Value", justify="right", min_width=24)

    table.add_row("Total records", str(result.total_records))
    for source in BalanceSource:
        table.add_row(f"  from {source}", str(result.counts.get(str(source), 0)))
    table.add_row("Start", result.start or "-")
    table.add_row("End", result.end or "-")
    table.add_row("Current balance", _format_balance(result.current_balance))

    console.print(table)
    if result.from_fills:
        console.print(
            "[yellow]Fill records use the current balance as an estimate; "
            "only bill records carry historical balances.[/yellow]"
        )
