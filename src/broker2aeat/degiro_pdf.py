import datetime
import logging
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from .decimals import parse_es_decimal
from .errors import GrammarError
from .models import AccountNote, BalanceNote, BrokerInformation, BrokerOperation, CompanyInfo
from .pdf_text import extract_text, remove_repeated_section

NOTES_HEADER_BEGIN = (
    "\nFecha\nProducto\nSymbol/ISIN\nTipo de\norden\nCantidad\nPrecio\nValor local"
    "\nValor en EUR\nComisión\nTipo de\ncambio\nBeneficios y\npérdidas"
)
NOTES_HEADER_END = "Informe anual de flatex"

BALANCE_HEADER_BEGIN = "\nCASH & CASH FUND (EUR)\n"
BALANCE_HEADER_END = "Amsterdam, "
BALANCE_COLUMNS_HEADER = "\nProducto\nISIN\nBolsa\nCantidad\nMoneda\nPrecio\nValor (EUR)"

# --- Grammar primitives ---
_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{1,4})")
_DECIMAL_RE = re.compile(r"(?:\d[.,]*)+")
_EARNINGS_RE = re.compile(r"[+-]?(?:\d\.*)+,(?:\d\.*)+")
_LINE_RE = re.compile(r"[^\n]*")
_ISIN = r"[^\d\s]{2}\S{9}\d+"
_COMPANY_RE = re.compile(r"(.+?)\n(" + _ISIN + r")(?=\n|$)", re.DOTALL)


class _Cursor:
    """Position in the text being parsed; every rule advances it or raises GrammarError."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    @property
    def rest(self) -> str:
        return self.text[self.pos:]

    def at_end(self) -> bool:
        return not self.rest.strip()

    def match(self, pattern: "re.Pattern", rule: str) -> "re.Match":
        m = pattern.match(self.text, self.pos)
        if m is None:
            raise GrammarError(rule, self.rest)
        self.pos = m.end()
        return m

    def char(self, expected: str, rule: str) -> None:
        if not self.text.startswith(expected, self.pos):
            raise GrammarError(rule, self.rest)
        self.pos += len(expected)

    def take(self, count: int, rule: str) -> str:
        if self.pos + count > len(self.text):
            raise GrammarError(rule, self.rest)
        value = self.text[self.pos:self.pos + count]
        self.pos += count
        return value

    def optional_char(self, expected: str) -> bool:
        if self.text.startswith(expected, self.pos):
            self.pos += len(expected)
            return True
        return False


def parse_date(cursor: _Cursor) -> datetime.date:
    m = cursor.match(_DATE_RE, "date concept")
    day, month, year = (int(g) for g in m.groups())
    try:
        return datetime.date(year, month, day)
    except ValueError:
        raise GrammarError("date concept", m.group(0)) from None


def parse_decimal(cursor: _Cursor, rule: str = "decimal value") -> Decimal:
    return parse_es_decimal(cursor.match(_DECIMAL_RE, rule).group(0), rule)


def parse_earnings(cursor: _Cursor) -> Optional[Decimal]:
    """Optional signed result after a transaction; the cursor is left untouched when absent."""
    start = cursor.pos
    if not cursor.optional_char("\n"):
        return None
    m = _EARNINGS_RE.match(cursor.text, cursor.pos)
    if m is None:
        cursor.pos = start
        return None
    cursor.pos = m.end()
    return parse_es_decimal(m.group(0), "earnings value")


def parse_operation(cursor: _Cursor) -> BrokerOperation:
    return BrokerOperation.from_code(cursor.take(1, "broker operation"))


def parse_company_info(cursor: _Cursor) -> CompanyInfo:
    """Company name, possibly wrapped over several lines, followed by its ISIN line."""
    m = cursor.match(_COMPANY_RE, "company info")
    name = m.group(1).replace("\n", " ").rstrip()
    cursor.optional_char("\n")
    return CompanyInfo(name=name, isin=m.group(2))


def parse_account_note(cursor: _Cursor, broker: BrokerInformation) -> AccountNote:
    date = parse_date(cursor)
    cursor.char("\n", "account note")
    company = parse_company_info(cursor)
    operation = parse_operation(cursor)
    values = []
    for _ in range(6):
        cursor.char("\n", "account note")
        values.append(parse_decimal(cursor))
    quantity, price, value, _value_in_euro, commission, _exchange_rate = values
    parse_earnings(cursor)
    return AccountNote(
        date=date,
        company=company,
        operation=operation,
        quantity=quantity,
        price=price,
        value=value,
        commission=commission,
        broker=broker,
    )


def parse_balance_note(cursor: _Cursor, broker: BrokerInformation) -> BalanceNote:
    value_in_euro = parse_decimal(cursor)
    cursor.char("\n", "balance note")
    price = parse_decimal(cursor)
    cursor.char("\n", "balance note")
    currency = cursor.take(3, "currency")
    cursor.char("\n", "balance note")
    quantity = parse_decimal(cursor)
    cursor.char("\n", "balance note")
    market = cursor.match(_LINE_RE, "market").group(0)
    cursor.char("\n", "balance note")
    cursor.match(_LINE_RE, "product type")
    cursor.char("\n", "balance note")
    company = parse_company_info(cursor)
    return BalanceNote(
        company=company,
        market=market,
        quantity=quantity,
        currency=currency,
        price=price,
        value_in_euro=value_in_euro,
        broker=broker,
    )


def parse_account_notes(text: str, broker: BrokerInformation) -> List[AccountNote]:
    """Parse a transaction section: notes each introduced by a newline."""
    cursor = _Cursor(text)
    notes = []
    while not cursor.at_end():
        cursor.char("\n", "account notes")
        notes.append(parse_account_note(cursor, broker))
    return notes


def parse_balance_notes(text: str, broker: BrokerInformation) -> List[BalanceNote]:
    """Parse a holdings section: notes back to back until only whitespace is left."""
    cursor = _Cursor(text)
    notes = []
    while not cursor.at_end():
        notes.append(parse_balance_note(cursor, broker))
    return notes


def find_sections(content: str, begin: str, end: str) -> List[str]:
    """Split out the sections that start after every ``begin`` marker.

    Each section runs to the next ``begin`` marker; the last one runs to the
    character before ``end`` or to the end of the document when ``end`` is absent.
    """
    starts = [m.start() for m in re.finditer(re.escape(begin), content)]
    sections = []
    for i, start in enumerate(starts):
        section_begin = start + len(begin)
        if i + 1 < len(starts):
            section_end = starts[i + 1]
        else:
            found = content.find(end, section_begin)
            section_end = found - 1 if found != -1 else len(content)
        sections.append(content[section_begin:section_end])
    return sections


class DegiroParser:
    """Parser for the text of a Degiro annual report."""

    def __init__(self, content: str, broker: BrokerInformation) -> None:
        self.content = content
        self.broker = broker

    def parse_account_notes(self) -> List[AccountNote]:
        notes: List[AccountNote] = []
        for section in find_sections(self.content, NOTES_HEADER_BEGIN, NOTES_HEADER_END):
            logging.debug("Degiro transaction section: %r", section)
            notes.extend(parse_account_notes(section, self.broker))
        return notes

    def parse_balance_notes(self) -> List[BalanceNote]:
        notes: List[BalanceNote] = []
        for section in find_sections(self.content, BALANCE_HEADER_BEGIN, BALANCE_HEADER_END):
            logging.debug("Degiro holdings section: %r", section)
            notes.extend(parse_balance_notes(section, self.broker))
        return notes

    def parse_pdf_content(self) -> Tuple[List[BalanceNote], List[AccountNote]]:
        """Parse holdings and transactions.

        Returns:
            Tuple of (balance_notes, account_notes).
        """
        account_notes = self.parse_account_notes()
        balance_notes = self.parse_balance_notes()
        logging.info(
            "Degiro report: %d position(s), %d transaction(s)",
            len(balance_notes), len(account_notes),
        )
        return balance_notes, account_notes


def read_degiro_pdf(data: bytes) -> str:
    """Extract the text of a Degiro PDF report with repeated page headers removed."""
    text = extract_text(data)
    text = remove_repeated_section(text, NOTES_HEADER_BEGIN)
    return remove_repeated_section(text, BALANCE_COLUMNS_HEADER)
