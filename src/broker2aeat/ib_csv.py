import datetime
import io
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, List, Tuple

import pandas as pd

from .decimals import parse_plain_decimal
from .errors import CompanyLookupError, GrammarError
from .ib_states import Row, RowKind, collect_balance_notes, position_quantity
from .models import AccountNote, BalanceNote, BrokerInformation, BrokerOperation, CompanyInfo

STATEMENT_HEADER_PREFIX = "Statement,Header,"
ES_HEADER_CONTENT = "Statement,Header,Nombre del campo,Valor del campo"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Financial instrument information columns
INFO_SYMBOL, INFO_NAME, INFO_ISIN = 3, 4, 6
# Open positions columns
POS_CURRENCY, POS_SYMBOL, POS_QUANTITY, POS_MULT, POS_PRICE, POS_VALUE = 4, 5, 6, 7, 10, 11
# Trades columns without the account column
TX_SYMBOL, TX_DATE, TX_QUANTITY, TX_PRICE, TX_PROCEEDS, TX_COMMISSION = 5, 6, 7, 8, 10, 11
TX_FIELDS_WITHOUT_ACCOUNT = 16


@dataclass(frozen=True)
class StatementLabels:
    """Literal row prefixes that delimit the sections of one report language."""
    company_info_start: str
    company_info_start_old: str
    company_info_end: str
    open_positions_begin: str
    open_positions_end: str
    open_positions_stock: str
    open_positions_total: str
    trades_begin: str
    trades_begin_no_account: str
    trades_end: str
    trades_stock: str


EN_LABELS = StatementLabels(
    company_info_start=(
        "Financial Instrument Information,Header,Asset Category,Symbol,Description,Conid,"
        "Security ID,Underlying,Listing Exch,Multiplier,Type,Code"
    ),
    company_info_start_old=(
        "Financial Instrument Information,Header,Asset Category,Symbol,Description,Conid,"
        "Security ID,Listing Exch,Multiplier,Type,Code"
    ),
    company_info_end="Financial Instrument Information,Data,Stocks,",
    open_positions_begin=(
        "Open Positions,Header,DataDiscriminator,Asset Category,Currency,Symbol,Quantity,Mult,"
        "Cost Price,Cost Basis,Close Price,Value,Unrealized P/L,Code"
    ),
    open_positions_end="Open Positions,Total,,Stocks,EUR,",
    open_positions_stock="Open Positions,Data,Summary,Stocks,",
    open_positions_total="Open Positions,Total,,Stocks,",
    trades_begin=(
        "Trades,Header,DataDiscriminator,Asset Category,Currency,Account,Symbol,Date/Time,Quantity,"
        "T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code"
    ),
    trades_begin_no_account=(
        "Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,Date/Time,Quantity,"
        "T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code"
    ),
    trades_end="Trades,Total,",
    trades_stock="Trades,Data,Order,Stocks,",
)

ES_LABELS = StatementLabels(
    company_info_start=(
        "Información de instrumento financiero,Header,Categoría de activo,Símbolo,Descripción,"
        "Conid,Id. de seguridad,Underlying,Merc. de cotización,Multiplicador,Tipo,Código"
    ),
    company_info_start_old=(
        "Información de instrumento financiero,Header,Categoría de activo,Símbolo,Descripción,"
        "Conid,Id. de seguridad,Merc. de cotización,Multiplicador,Tipo,Código"
    ),
    company_info_end="Información de instrumento financiero,Data,Acciones,",
    open_positions_begin=(
        "Posiciones abiertas,Header,DataDiscriminator,Categoría de activo,Divisa,Símbolo,Cantidad,"
        "Mult.,Precio de coste,Base de coste,Precio de cierre,Valor,PyG no realizadas,Código"
    ),
    open_positions_end="Posiciones abiertas,Total,,Acciones,EUR,",
    open_positions_stock="Posiciones abiertas,Data,Summary,Acciones,",
    open_positions_total="Posiciones abiertas,Total,,Acciones,",
    trades_begin=(
        "Operaciones,Header,DataDiscriminator,Categoría de activo,Divisa,Cuenta,Símbolo,Fecha/Hora,"
        "Cantidad,Precio trans.,Precio de cier.,Productos,Tarifa/com.,Básico,PyG realizadas,"
        "MTM P/G,Código"
    ),
    trades_begin_no_account=(
        "Operaciones,Header,DataDiscriminator,Categoría de activo,Divisa,Símbolo,Fecha/Hora,"
        "Cantidad,Precio trans.,Precio de cier.,Productos,Tarifa/com.,Básico,PyG realizadas,"
        "MTM P/G,Código"
    ),
    trades_end="Operaciones,Total,",
    trades_stock="Operaciones,Data,Order,Acciones,",
)


def is_ib_csv(text: str) -> bool:
    """Whether the text starts like an Interactive Brokers activity statement CSV."""
    return text.lstrip("\ufeff").startswith(STATEMENT_HEADER_PREFIX)


def detect_labels(content: str) -> StatementLabels:
    """Pick the report language from the statement header."""
    return ES_LABELS if ES_HEADER_CONTENT in content else EN_LABELS


def replace_escaped_fields(line: str) -> str:
    """Remove quotes and the commas inside quoted fields so a line splits on commas.

    ``a,"1,234.50",b`` becomes ``a,1234.50,b``.
    """
    out = []
    quoted = False
    for char in line:
        if quoted:
            if char == '"':
                quoted = False
            elif char != ",":
                out.append(char)
        elif char == '"':
            quoted = True
        else:
            out.append(char)
    return "".join(out)


def split_fields(line: str) -> List[str]:
    return replace_escaped_fields(line.rstrip("\r")).split(",")


def _field(fields: List[str], index: int, rule: str) -> str:
    if index >= len(fields):
        raise GrammarError(rule, ",".join(fields))
    return fields[index]


class IBCSVParser:
    """Parser for the Interactive Brokers activity statement in CSV (English or Spanish)."""

    def __init__(self, content: str, broker: BrokerInformation) -> None:
        self.content = content.lstrip("\ufeff").replace("\r\n", "\n")
        self.broker = broker
        self.labels = detect_labels(self.content)
        self.companies_info = self.parse_companies_info()

    def _company_section(self) -> str:
        labels = self.labels
        start = self.content.find(labels.company_info_start)
        if start == -1:
            start = self.content.find(labels.company_info_start_old)
        if start == -1:
            raise GrammarError("financial instrument information header", self.content)
        end_left = self.content.rfind(labels.company_info_end)
        if end_left < start:
            raise GrammarError("financial instrument information data", self.content[start:])
        end = self.content.find("\n", end_left)
        if end == -1:
            end = len(self.content)
        return self.content[start:end]

    def parse_companies_info(self) -> Dict[str, CompanyInfo]:
        """Symbol to company table from the financial instrument information section."""
        try:
            table = pd.read_csv(
                io.StringIO(self._company_section()),
                dtype=str,
                keep_default_na=False,
                header=0,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise GrammarError("financial instrument information", str(e)) from e
        if table.shape[1] <= INFO_ISIN:
            raise GrammarError("financial instrument information", ",".join(table.columns))
        companies = {}
        for row in table.itertuples(index=False):
            companies[row[INFO_SYMBOL]] = CompanyInfo(name=row[INFO_NAME], isin=row[INFO_ISIN])
        logging.debug("IB instrument information: %d stock(s)", len(companies))
        return companies

    def _company(self, symbol: str) -> CompanyInfo:
        try:
            return self.companies_info[symbol]
        except KeyError:
            raise CompanyLookupError(symbol) from None

    def _section_lines(self, begin: str, end: str, rule: str, alternative: str = "") -> List[str]:
        """Lines from the ``begin`` header up to the line before the last ``end`` row."""
        start = self.content.find(begin)
        if start == -1 and alternative:
            start = self.content.find(alternative)
        if start == -1:
            raise GrammarError(f"{rule} header", self.content)
        stop = self.content.rfind(end)
        if stop < start:
            raise GrammarError(f"{rule} end", self.content[start:])
        return self.content[start:stop - 1].split("\n")

    def _parse_account_note(self, fields: List[str]) -> AccountNote:
        logging.debug("IB trade fields: %s", fields)
        offset = 0 if len(fields) == TX_FIELDS_WITHOUT_ACCOUNT else 1
        date_text = _field(fields, TX_DATE + offset, "trade date")
        try:
            date = datetime.datetime.strptime(date_text, DATE_FORMAT).date()
        except ValueError:
            raise GrammarError("trade date", date_text) from None
        quantity = parse_plain_decimal(_field(fields, TX_QUANTITY + offset, "trade quantity"))
        return AccountNote(
            date=date,
            company=self._company(_field(fields, TX_SYMBOL + offset, "trade symbol")),
            operation=BrokerOperation.SELL if quantity < 0 else BrokerOperation.BUY,
            quantity=abs(quantity),
            price=parse_plain_decimal(_field(fields, TX_PRICE + offset, "trade price")),
            value=abs(parse_plain_decimal(_field(fields, TX_PROCEEDS + offset, "trade proceeds"))),
            commission=abs(parse_plain_decimal(_field(fields, TX_COMMISSION + offset, "trade commission"))),
            broker=self.broker,
        )

    def parse_account_notes(self) -> List[AccountNote]:
        """Parse the stock order rows of the trades section."""
        labels = self.labels
        lines = self._section_lines(
            labels.trades_begin, labels.trades_end, "trades", alternative=labels.trades_begin_no_account,
        )
        return [
            self._parse_account_note(split_fields(line))
            for line in lines
            if line.startswith(labels.trades_stock)
        ]

    def _position_rows(self, lines: List[str]) -> Iterator[Row]:
        """Classify open position lines, opening a block whenever the currency changes.

        Lines that are neither stock positions nor totals are skipped.
        """
        labels = self.labels
        yield Row(RowKind.STOCKS_MARKER)
        block_currency = None
        for line in lines:
            if line.startswith(labels.open_positions_stock):
                fields = split_fields(line)
                currency = _field(fields, POS_CURRENCY, "position currency")
                if currency != block_currency:
                    block_currency = currency
                    yield Row(RowKind.CURRENCY_HEADER, currency=currency)
                yield Row(RowKind.DATA, currency=currency, payload=fields)
            elif line.startswith(labels.open_positions_total):
                block_currency = None
                yield Row(RowKind.TOTAL, payload=split_fields(line))

    def _parse_balance_note(self, fields: List[str], currency: str) -> BalanceNote:
        logging.debug("IB position fields: %s", fields)
        quantity = parse_plain_decimal(_field(fields, POS_QUANTITY, "position quantity"))
        mult = parse_plain_decimal(_field(fields, POS_MULT, "position multiplier"))
        return BalanceNote(
            company=self._company(_field(fields, POS_SYMBOL, "position symbol")),
            market="",
            quantity=position_quantity(quantity, mult),
            currency=currency,
            price=parse_plain_decimal(_field(fields, POS_PRICE, "position price")),
            value_in_euro=parse_plain_decimal(_field(fields, POS_VALUE, "position value")),
            broker=self.broker,
        )

    def _read_total(self, fields: List[str]) -> Decimal:
        return parse_plain_decimal(_field(fields, POS_VALUE, "positions total"))

    def parse_balance_notes(self) -> List[BalanceNote]:
        """Parse open stock positions, rescaling foreign-currency blocks to EUR."""
        labels = self.labels
        lines = self._section_lines(labels.open_positions_begin, labels.open_positions_end, "open positions")
        return collect_balance_notes(self._position_rows(lines), self._parse_balance_note, self._read_total)

    def parse_csv_content(self) -> Tuple[List[BalanceNote], List[AccountNote]]:
        """Parse positions and trades.

        Returns:
            Tuple of (balance_notes, account_notes).
        """
        balance_notes = self.parse_balance_notes()
        account_notes = self.parse_account_notes()
        logging.info(
            "Interactive Brokers CSV: %d position(s), %d transaction(s)",
            len(balance_notes), len(account_notes),
        )
        return balance_notes, account_notes
