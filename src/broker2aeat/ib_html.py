import datetime
import logging
from decimal import Decimal
from typing import Dict, Iterator, List, Tuple

from bs4 import BeautifulSoup, Tag

from .decimals import parse_plain_decimal
from .errors import CompanyLookupError, GrammarError
from .ib_states import Row, RowKind, collect_balance_notes, collect_emitted, position_quantity
from .models import AccountNote, BalanceNote, BrokerInformation, BrokerOperation, CompanyInfo

STOCKS_NAMES = frozenset(("Stocks", "Acciones"))
ACCOUNT_COLUMN_NAMES = frozenset(("Account", "Cuenta"))

OPEN_POSITIONS_SELECTOR = 'div[id^="tblOpenPositions_"] div table'
CONTRACT_INFO_SELECTOR = 'div[id^="tblContractInfo"] div table'
TRANSACTIONS_SELECTOR = 'div[id^="tblTransactions_"] div table'

DATE_FORMAT = "%Y-%m-%d, %H:%M:%S"

# Contract information columns
INFO_SYMBOL, INFO_NAME, INFO_ISIN = 0, 1, 3
# Open positions columns
POS_SYMBOL, POS_QUANTITY, POS_MULT, POS_PRICE, POS_VALUE = 0, 1, 2, 5, 6
# Transactions columns, shifted by one when the table starts with an account column
TX_SYMBOL, TX_DATE, TX_QUANTITY, TX_PRICE, TX_PROCEEDS, TX_COMMISSION = 0, 1, 2, 3, 5, 6


def row_cells(row: Tag) -> List[str]:
    """Cell texts of a table row, repeating a cell once per spanned column."""
    cells = []
    for cell in row.find_all(["td", "th"], recursive=False):
        try:
            span = max(int(cell.get("colspan", 1)), 1)
        except ValueError:
            span = 1
        cells.extend([cell.get_text(" ", strip=True)] * span)
    return cells


def _has_class(tag: Tag, name: str) -> bool:
    return name in (tag.get("class") or [])


def _first_cell(row: Tag):
    return row.find(["td", "th"], recursive=False)


def _field(cells: List[str], index: int, rule: str) -> str:
    if index >= len(cells) or not cells[index]:
        raise GrammarError(rule, " | ".join(cells))
    return cells[index]


def classify_row(row: Tag, data_class: str = "") -> Tuple[RowKind, str]:
    """Classify a table body row for the state machine.

    Args:
        row: ``tr`` element.
        data_class: Row class marking data rows. When set, every other body
            row (per-symbol subtotals and totals included) is ``OTHER``; when
            empty, any non-header, non-total row counts as data.

    Returns:
        Tuple of (row kind, first cell text).
    """
    first = _first_cell(row)
    text = first.get_text(" ", strip=True) if first is not None else ""
    if first is not None and _has_class(first, "header-asset"):
        return (RowKind.STOCKS_MARKER if text in STOCKS_NAMES else RowKind.ASSET_HEADER), text
    if first is not None and _has_class(first, "header-currency"):
        return RowKind.CURRENCY_HEADER, text
    if data_class:
        return (RowKind.DATA if _has_class(row, data_class) else RowKind.OTHER), text
    if _has_class(row, "total") or _has_class(row, "subtotal"):
        return RowKind.TOTAL, text
    if first is None:
        return RowKind.OTHER, text
    return RowKind.DATA, text


class IBParser:
    """Parser for the Interactive Brokers activity statement in HTML."""

    def __init__(self, data: str, broker: BrokerInformation) -> None:
        self.dom = BeautifulSoup(data, "html.parser")
        self.broker = broker
        self.companies_info = self.parse_companies_info()

    def parse_companies_info(self) -> Dict[str, CompanyInfo]:
        """Symbol to company table built from the stocks rows of the contract information."""
        companies: Dict[str, CompanyInfo] = {}
        for table in self.dom.select(CONTRACT_INFO_SELECTOR):
            in_stocks = False
            for row in table.find_all("tr"):
                first = _first_cell(row)
                if first is None:
                    continue
                if _has_class(first, "header-asset"):
                    in_stocks = first.get_text(strip=True) in STOCKS_NAMES
                    continue
                if not in_stocks or row.find_parent("thead") is not None:
                    continue
                cells = row_cells(row)
                symbol = _field(cells, INFO_SYMBOL, "company ticker")
                companies[symbol] = CompanyInfo(
                    name=_field(cells, INFO_NAME, "company name"),
                    isin=_field(cells, INFO_ISIN, "company isin"),
                )
        logging.debug("IB contract information: %d stock(s)", len(companies))
        return companies

    def _company(self, symbol: str) -> CompanyInfo:
        try:
            return self.companies_info[symbol]
        except KeyError:
            raise CompanyLookupError(symbol) from None

    def _rows(self, table: Tag, data_class: str = "") -> Iterator[Row]:
        for row in table.select("tbody tr"):
            kind, text = classify_row(row, data_class)
            yield Row(kind, currency=text if kind is RowKind.CURRENCY_HEADER else None, payload=row)

    def _parse_balance_note(self, row: Tag, currency: str) -> BalanceNote:
        cells = row_cells(row)
        logging.debug("IB position row: %s", cells)
        quantity = parse_plain_decimal(_field(cells, POS_QUANTITY, "position quantity"))
        mult = parse_plain_decimal(_field(cells, POS_MULT, "position multiplier"))
        return BalanceNote(
            company=self._company(_field(cells, POS_SYMBOL, "position symbol")),
            market="",
            quantity=position_quantity(quantity, mult),
            currency=currency,
            price=parse_plain_decimal(_field(cells, POS_PRICE, "position price")),
            value_in_euro=parse_plain_decimal(_field(cells, POS_VALUE, "position value")),
            broker=self.broker,
        )

    def _read_total(self, row: Tag) -> Decimal:
        return parse_plain_decimal(_field(row_cells(row), POS_VALUE, "positions total"))

    def parse_balance_notes(self) -> List[BalanceNote]:
        """Parse open stock positions, rescaling foreign-currency blocks to EUR.

        Raises:
            GrammarError: if the open positions table is missing or malformed.
            CompanyLookupError: if a position symbol is not in the contract information.
        """
        table = self.dom.select_one(OPEN_POSITIONS_SELECTOR)
        if table is None:
            raise GrammarError("open positions table", "")
        return collect_balance_notes(self._rows(table), self._parse_balance_note, self._read_total)

    def _parse_account_note(self, row: Tag, offset: int) -> AccountNote:
        cells = row_cells(row)
        logging.debug("IB transaction row: %s", cells)
        date_text = _field(cells, TX_DATE + offset, "transaction date")
        try:
            date = datetime.datetime.strptime(date_text, DATE_FORMAT).date()
        except ValueError:
            raise GrammarError("transaction date", date_text) from None
        quantity = parse_plain_decimal(_field(cells, TX_QUANTITY + offset, "transaction quantity"))
        return AccountNote(
            date=date,
            company=self._company(_field(cells, TX_SYMBOL + offset, "transaction symbol")),
            operation=BrokerOperation.SELL if quantity < 0 else BrokerOperation.BUY,
            quantity=abs(quantity),
            price=parse_plain_decimal(_field(cells, TX_PRICE + offset, "transaction price")),
            value=abs(parse_plain_decimal(_field(cells, TX_PROCEEDS + offset, "transaction proceeds"))),
            commission=abs(parse_plain_decimal(_field(cells, TX_COMMISSION + offset, "transaction commission"))),
            broker=self.broker,
        )

    def parse_account_notes(self) -> List[AccountNote]:
        """Parse stock trades; a statement without a transactions table has none."""
        table = self.dom.select_one(TRANSACTIONS_SELECTOR)
        if table is None:
            logging.debug("IB statement without transactions table")
            return []
        offset = 0
        for header in table.select("thead tr"):
            cells = row_cells(header)
            if cells and cells[0] in ACCOUNT_COLUMN_NAMES:
                offset = 1
        return collect_emitted(
            self._rows(table, data_class="row-summary"),
            lambda row, _currency: self._parse_account_note(row, offset),
        )

    def parse_html_content(self) -> Tuple[List[BalanceNote], List[AccountNote]]:
        """Parse positions and trades.

        Returns:
            Tuple of (balance_notes, account_notes).
        """
        balance_notes = self.parse_balance_notes()
        account_notes = self.parse_account_notes()
        logging.info(
            "Interactive Brokers HTML: %d position(s), %d transaction(s)",
            len(balance_notes), len(account_notes),
        )
        return balance_notes, account_notes
