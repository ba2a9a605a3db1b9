"""Aforix D-6 (foreign securities held) form writer.

The D-6 form is an XML document split into pages. Each page repeats the
filer header and holds a fixed number of position blocks; every field is a
``Campo`` element carrying a hexadecimal ``Codigo`` and its ``Datos``.
Codes advance by one per written field, with gaps left for the fields this
tool does not fill.
"""

import logging
from decimal import Decimal
from typing import List

from lxml import etree

from .decimals import format_decimal, round_dp
from .models import GBP_CURRENCY, GBX_CURRENCY, SPAIN_COUNTRY_CODE, BalanceNote, FinancialInformation

FORM_TYPE = "D-6"
FORM_VERSION = "R10"
FIRST_PAGE_TYPE = "D61"
NEXT_PAGE_TYPE = "D62"

NOTES_FIRST_PAGE = 3
NOTES_PER_PAGE = 6
FIRST_PAGE_BASE_CODE = 0x2DB
NEXT_PAGE_BASE_CODE = 0x320

DECLARATION_TYPE = "D"
NEW_POSITION = "N"
SPANISH_SECURITY_CODE = "800"
FOREIGN_SECURITY_CODE = "400"
LISTED_SHARES_CODE = "01"

XML_DECLARATION = b'<?xml version="1.0" encoding="utf-8"?>\n'
LINE_SEPARATOR = b"\r\n"


def format_valuation(value: Decimal) -> str:
    """Decimal with a comma separator, as the form expects ('2020.32' -> '2020,32')."""
    return format_decimal(value, ",")


def position_valuation(note: BalanceNote) -> Decimal:
    """Quantity times price in the quote currency, pence converted to pounds."""
    value = note.quantity * note.price
    if note.currency == GBX_CURRENCY:
        value = value / Decimal(100)
    return round_dp(value, 2)


def _text_element(parent: etree._Element, tag: str, text: str) -> etree._Element:
    element = etree.SubElement(parent, tag)
    element.text = text
    return element


class _PageWriter:
    """Appends pages to a form, keeping the running field code."""

    def __init__(self, form: etree._Element, info: FinancialInformation) -> None:
        self.form = form
        self.info = info
        self.code = FIRST_PAGE_BASE_CODE
        self.fields: etree._Element = None

    def field(self, data: str) -> None:
        campo = etree.SubElement(self.fields, "Campo")
        _text_element(campo, "Codigo", format(self.code, "X"))
        _text_element(campo, "Datos", data)
        self.code += 1

    def skip(self, count: int) -> None:
        self.code += count

    def open_page(self, first: bool) -> None:
        page = etree.SubElement(self.form, "Pagina")
        _text_element(page, "Tipo", FIRST_PAGE_TYPE if first else NEXT_PAGE_TYPE)
        self.fields = etree.SubElement(page, "Campos")
        if not first:
            self.code = NEXT_PAGE_BASE_CODE
        self.field(DECLARATION_TYPE)
        self.field(str(self.info.year))
        if first:
            self.skip(2)
        self.field(self.info.full_name)
        self.field(self.info.nif)
        self.skip(7 if first else 2)

    def position(self, note: BalanceNote) -> None:
        self.field(NEW_POSITION)
        self.field(note.company.isin)
        self.field(note.company.name)
        if note.company.isin.startswith(SPAIN_COUNTRY_CODE):
            self.field(SPANISH_SECURITY_CODE)
        else:
            self.field(FOREIGN_SECURITY_CODE)
        self.field(LISTED_SHARES_CODE)
        self.field(note.broker.country_code)
        self.field(GBP_CURRENCY if note.currency == GBX_CURRENCY else note.currency)
        self.field(format_valuation(note.quantity))
        self.skip(1)
        self.field(format_valuation(position_valuation(note)))
        self.skip(2)


def paginate(notes: List[BalanceNote]) -> List[List[BalanceNote]]:
    """Split positions into pages: three on the first page, six on each later one."""
    if not notes:
        return []
    pages = [notes[:NOTES_FIRST_PAGE]]
    for start in range(NOTES_FIRST_PAGE, len(notes), NOTES_PER_PAGE):
        pages.append(notes[start:start + NOTES_PER_PAGE])
    return pages


def build_d6_tree(info: FinancialInformation) -> etree._Element:
    """Build the ``Formulario`` element for the filer's positions."""
    form = etree.Element("Formulario")
    _text_element(form, "Tipo", FORM_TYPE)
    _text_element(form, "Version", FORM_VERSION)
    writer = _PageWriter(form, info)
    for index, page_notes in enumerate(paginate(info.balance_notes)):
        writer.open_page(first=index == 0)
        for note in page_notes:
            writer.position(note)
    return form


def create_d6_form(info: FinancialInformation) -> bytes:
    """Render the D-6 form document.

    Args:
        info: Filer identity and positions; account notes are not used.

    Returns:
        UTF-8 XML with a declaration, two-space indentation and CRLF line ends.
    """
    form = build_d6_tree(info)
    body = etree.tostring(form, pretty_print=True, encoding="utf-8").rstrip(b"\n")
    document = XML_DECLARATION + body
    logging.info("D-6 form: %d position(s) on %d page(s)", len(info.balance_notes), len(form.findall("Pagina")))
    return document.replace(b"\n", LINE_SEPARATOR)
