from decimal import Decimal
from typing import List

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .decimals import format_decimal
from .models import AccountNote, BalanceNote, BrokerOperation, FinancialInformation

_console = Console()


def balance_notes_table(notes: List[BalanceNote]) -> Table:
    """Build a table of year-end positions with a EUR total footer."""
    table = Table(title="Posiciones a fin de ejercicio", show_footer=True)
    table.add_column("Broker")
    table.add_column("Producto", footer="Total")
    table.add_column("ISIN")
    table.add_column("Bolsa")
    table.add_column("Cantidad", justify="right")
    table.add_column("Moneda")
    table.add_column("Precio", justify="right")
    total = sum((note.value_in_euro for note in notes), Decimal("0.00"))
    table.add_column("Valor (EUR)", justify="right", footer=format_decimal(total))
    for note in notes:
        table.add_row(
            note.broker.name,
            note.company.name,
            note.company.isin,
            note.market,
            format_decimal(note.quantity),
            note.currency,
            format_decimal(note.price),
            format_decimal(note.value_in_euro),
        )
    return table


def account_notes_table(notes: List[AccountNote]) -> Table:
    """Build a table of trades, sells highlighted."""
    table = Table(title="Operaciones")
    table.add_column("Fecha")
    table.add_column("Broker")
    table.add_column("Producto")
    table.add_column("ISIN")
    table.add_column("Tipo")
    table.add_column("Cantidad", justify="right")
    table.add_column("Precio", justify="right")
    table.add_column("Valor", justify="right")
    table.add_column("Comision", justify="right")
    for note in notes:
        table.add_row(
            note.date.isoformat(),
            note.broker.name,
            note.company.name,
            note.company.isin,
            Text(note.operation.value, style="red" if note.operation is BrokerOperation.SELL else "green"),
            format_decimal(note.quantity),
            format_decimal(note.price),
            format_decimal(note.value),
            format_decimal(note.commission),
        )
    return table


def print_notes(info: FinancialInformation) -> None:
    """Print the filer header and the parsed positions and trades."""
    _console.print()
    _console.print(Text(f"{info.full_name} ({info.nif}) - ejercicio {info.year}", style="bold blue"))
    if info.balance_notes:
        _console.print(balance_notes_table(info.balance_notes))
    else:
        _console.print(Text("  No positions found.", style="bright_yellow"))
    if info.account_notes:
        _console.print(account_notes_table(info.account_notes))


def print_written_file(label: str, path: str) -> None:
    text = Text()
    text.append(f"  {label}: ", style="")
    text.append(path, style="bold")
    text.append("  <-- submit", style="bright_green bold")
    _console.print(text)
