"""AEAT model 720 (assets held abroad) fixed-width file writer.

The file holds one summary register followed by one detail register per
position, each exactly 500 bytes encoded in ISO-8859-15 and terminated by a
newline. Field positions below are 1-based and inclusive, as in the
official register design of the tax office.
"""

import datetime
import logging
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple

from .decimals import split_decimal
from .errors import FieldEncodingError
from .models import AccountNote, BalanceNote, FinancialInformation
from .validation import check_position_has_transactions

REGISTER_SIZE = 500
DOCUMENT_ID = 720
NEGATIVE_SIGN = "N"
ENCODING = "iso8859_15"


class FieldKind(Enum):
    NUMERIC = "numeric"
    ALPHANUMERIC = "alphanumeric"
    STRING = "string"


class Field(NamedTuple):
    name: str
    kind: FieldKind
    begin: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.begin + 1


def _numeric(name: str, begin: int, end: int) -> Field:
    return Field(name, FieldKind.NUMERIC, begin, end)


def _alphanumeric(name: str, begin: int, end: int) -> Field:
    return Field(name, FieldKind.ALPHANUMERIC, begin, end)


def _string(name: str, begin: int, end: int) -> Field:
    return Field(name, FieldKind.STRING, begin, end)


class Register:
    """A 500-byte register initialised with spaces."""

    def __init__(self) -> None:
        self.data = bytearray(b" " * REGISTER_SIZE)

    def write_numeric(self, field: Field, value: int) -> None:
        """Write an unsigned integer right-justified and zero-padded.

        Raises:
            FieldEncodingError: if the value is negative or wider than the field.
        """
        if field.kind is not FieldKind.NUMERIC:
            raise FieldEncodingError(field.name, str(value), "not a numeric field")
        text = str(value)
        if value < 0 or len(text) > field.size:
            raise FieldEncodingError(field.name, text, f"does not fit {field.size} digit(s)")
        self.data[field.begin - 1:field.end] = text.zfill(field.size).encode("ascii")

    def write(self, field: Field, value: str) -> None:
        """Write text into a field.

        Numeric fields take the integer value of the text. Text fields are
        encoded in ISO-8859-15, left-justified, space-padded and truncated to
        the field width.

        Raises:
            FieldEncodingError: for unencodable characters or non-numeric text.
        """
        if field.kind is FieldKind.NUMERIC:
            if not value.strip().isdigit():
                raise FieldEncodingError(field.name, value, "not a number")
            self.write_numeric(field, int(value))
            return
        try:
            encoded = value.encode(ENCODING)
        except UnicodeEncodeError as e:
            raise FieldEncodingError(field.name, value, "not representable in ISO-8859-15") from e
        self.data[field.begin - 1:field.end] = encoded[:field.size].ljust(field.size, b" ")

    def write_sign(self, field: Field, negative: bool) -> None:
        self.write(field, NEGATIVE_SIGN if negative else "")


class SummaryRegister(Register):
    REGISTER_TYPE = 1
    TRANSMISSION = "T"

    REGISTER_TYPE_FIELD = _numeric("register type", 1, 1)
    DOCUMENT_ID_FIELD = _numeric("model", 2, 4)
    YEAR_FIELD = _numeric("year", 5, 8)
    NIF_FIELD = _alphanumeric("nif", 9, 17)
    NAME_FIELD = _alphanumeric("name", 18, 57)
    TRANSMISSION_FIELD = _string("transmission", 58, 58)
    TELEPHONE_FIELD = _numeric("telephone", 59, 67)
    CONTACT_NAME_FIELD = _alphanumeric("contact name", 68, 107)
    SECOND_DOCUMENT_ID_FIELD = _numeric("second model", 108, 110)
    ID_FIELD = _numeric("declaration id", 111, 120)
    COMPLEMENTARY_FIELD = _string("complementary", 121, 121)
    REPLACEMENT_FIELD = _string("replacement", 122, 122)
    PREVIOUS_DECLARATION_ID_FIELD = _numeric("previous declaration id", 123, 135)
    TOTAL_DETAIL_REGISTERS_FIELD = _numeric("detail registers", 136, 144)
    ACQUISITION_SIGN_FIELD = _string("acquisition sign", 145, 145)
    ACQUISITION_INT_FIELD = _numeric("acquisition integer", 146, 160)
    ACQUISITION_FRACTION_FIELD = _numeric("acquisition fraction", 161, 162)
    VALUATION_SIGN_FIELD = _string("valuation sign", 163, 163)
    VALUATION_INT_FIELD = _numeric("valuation integer", 164, 178)
    VALUATION_FRACTION_FIELD = _numeric("valuation fraction", 179, 180)

    def __init__(self) -> None:
        super().__init__()
        self.write_numeric(self.REGISTER_TYPE_FIELD, self.REGISTER_TYPE)
        self.write_numeric(self.DOCUMENT_ID_FIELD, DOCUMENT_ID)
        self.write_numeric(self.YEAR_FIELD, 0)
        self.write(self.TRANSMISSION_FIELD, self.TRANSMISSION)
        self.write_numeric(self.TELEPHONE_FIELD, 0)
        self.write_numeric(self.SECOND_DOCUMENT_ID_FIELD, DOCUMENT_ID)
        self.write_numeric(self.ID_FIELD, 1)
        self.write_numeric(self.PREVIOUS_DECLARATION_ID_FIELD, 0)
        self.write_numeric(self.TOTAL_DETAIL_REGISTERS_FIELD, 0)
        self.write_numeric(self.ACQUISITION_INT_FIELD, 0)
        self.write_numeric(self.ACQUISITION_FRACTION_FIELD, 0)
        self.write_numeric(self.VALUATION_INT_FIELD, 0)
        self.write_numeric(self.VALUATION_FRACTION_FIELD, 0)

    @classmethod
    def build(cls, notes: List[BalanceNote], year: int, nif: str, name: str, phone: str) -> "SummaryRegister":
        register = cls()
        register.write(cls.NIF_FIELD, nif)
        register.write_numeric(cls.YEAR_FIELD, year)
        register.write(cls.NAME_FIELD, name)
        if phone:
            register.write(cls.TELEPHONE_FIELD, phone)
        register.write(cls.CONTACT_NAME_FIELD, name)
        register.write_numeric(cls.TOTAL_DETAIL_REGISTERS_FIELD, len(notes))

        total = sum((note.value_in_euro for note in notes), Decimal("0.00"))
        negative, integer, fraction = split_decimal(total)
        register.write_sign(cls.ACQUISITION_SIGN_FIELD, negative)
        register.write_numeric(cls.ACQUISITION_INT_FIELD, integer)
        register.write_numeric(cls.ACQUISITION_FRACTION_FIELD, fraction)
        return register


class DetailRegister(Register):
    REGISTER_TYPE = 2
    OWNER_DECLARATION = 1
    STOCKS_ASSET_TYPE = "V"
    STOCKS_ASSET_SUBTYPE = 1
    ISIN_ID_TYPE = 1
    FIRST_ACQUISITION = "A"
    BOOK_ENTRY_REPRESENTATION = "A"
    FULL_OWNERSHIP = 100

    REGISTER_TYPE_FIELD = _numeric("register type", 1, 1)
    DOCUMENT_ID_FIELD = _numeric("model", 2, 4)
    YEAR_FIELD = _numeric("year", 5, 8)
    NIF_FIELD = _alphanumeric("nif", 9, 17)
    DECLARED_NIF_FIELD = _alphanumeric("declared nif", 18, 26)
    PROXY_NIF_FIELD = _alphanumeric("proxy nif", 27, 35)
    NAME_FIELD = _alphanumeric("name", 36, 75)
    DECLARATION_TYPE_FIELD = _numeric("declaration type", 76, 76)
    OWNERSHIP_TYPE_FIELD = _alphanumeric("ownership type", 77, 101)
    ASSET_TYPE_FIELD = _string("asset type", 102, 102)
    ASSET_SUBTYPE_FIELD = _numeric("asset subtype", 103, 103)
    REAL_ESTATE_ASSET_TYPE_FIELD = _alphanumeric("real estate type", 104, 128)
    COUNTRY_CODE_FIELD = _string("country code", 129, 130)
    STOCK_ID_TYPE_FIELD = _numeric("stock id type", 131, 131)
    STOCK_ID_FIELD = _alphanumeric("stock id", 132, 143)
    ACCOUNT_ID_TYPE_FIELD = _string("account id type", 144, 144)
    ACCOUNT_ID_FIELD = _alphanumeric("account id", 145, 155)
    ACCOUNT_CODE_FIELD = _alphanumeric("account code", 156, 189)
    ENTITY_NAME_FIELD = _alphanumeric("entity name", 190, 230)
    ENTITY_NIF_FIELD = _alphanumeric("entity nif", 231, 250)
    ENTITY_ADDRESS_FIELD = _alphanumeric("entity address", 251, 412)
    ENTITY_COUNTRY_CODE_FIELD = _alphanumeric("entity country code", 413, 414)
    FIRST_ACQUISITION_DATE_FIELD = _numeric("first acquisition date", 415, 422)
    ACQUISITION_TYPE_FIELD = _string("acquisition type", 423, 423)
    EXTINCTION_DATE_FIELD = _numeric("extinction date", 424, 431)
    ACQUISITION_SIGN_FIELD = _string("acquisition sign", 432, 432)
    ACQUISITION_INT_FIELD = _numeric("acquisition integer", 433, 444)
    ACQUISITION_FRACTION_FIELD = _numeric("acquisition fraction", 445, 446)
    VALUATION_SIGN_FIELD = _string("valuation sign", 447, 447)
    VALUATION_INT_FIELD = _numeric("valuation integer", 448, 459)
    VALUATION_FRACTION_FIELD = _numeric("valuation fraction", 460, 461)
    STOCK_REPRESENTATION_FIELD = _string("stock representation", 462, 462)
    STOCK_QUANTITY_INT_FIELD = _numeric("quantity integer", 463, 472)
    STOCK_QUANTITY_FRACTION_FIELD = _numeric("quantity fraction", 473, 474)
    REAL_ESTATE_REPRESENTATION_FIELD = _string("real estate representation", 475, 475)
    OWNED_PERCENTAGE_INT_FIELD = _numeric("owned percentage integer", 476, 478)
    OWNED_PERCENTAGE_FRACTION_FIELD = _numeric("owned percentage fraction", 479, 480)

    def __init__(self) -> None:
        super().__init__()
        self.write_numeric(self.REGISTER_TYPE_FIELD, self.REGISTER_TYPE)
        self.write_numeric(self.DOCUMENT_ID_FIELD, DOCUMENT_ID)
        self.write_numeric(self.YEAR_FIELD, 0)
        self.write_numeric(self.DECLARATION_TYPE_FIELD, self.OWNER_DECLARATION)
        self.write(self.ASSET_TYPE_FIELD, self.STOCKS_ASSET_TYPE)
        self.write_numeric(self.ASSET_SUBTYPE_FIELD, self.STOCKS_ASSET_SUBTYPE)
        self.write_numeric(self.STOCK_ID_TYPE_FIELD, self.ISIN_ID_TYPE)
        self.write_numeric(self.FIRST_ACQUISITION_DATE_FIELD, 0)
        self.write(self.ACQUISITION_TYPE_FIELD, self.FIRST_ACQUISITION)
        self.write_numeric(self.EXTINCTION_DATE_FIELD, 0)
        self.write_numeric(self.ACQUISITION_INT_FIELD, 0)
        self.write_numeric(self.ACQUISITION_FRACTION_FIELD, 0)
        self.write_numeric(self.VALUATION_INT_FIELD, 0)
        self.write_numeric(self.VALUATION_FRACTION_FIELD, 0)
        self.write(self.STOCK_REPRESENTATION_FIELD, self.BOOK_ENTRY_REPRESENTATION)
        self.write_numeric(self.STOCK_QUANTITY_INT_FIELD, 0)
        self.write_numeric(self.STOCK_QUANTITY_FRACTION_FIELD, 0)
        self.write_numeric(self.OWNED_PERCENTAGE_INT_FIELD, 0)
        self.write_numeric(self.OWNED_PERCENTAGE_FRACTION_FIELD, 0)

    @classmethod
    def build(
        cls,
        note: BalanceNote,
        account_notes: List[AccountNote],
        year: int,
        nif: str,
        name: str,
    ) -> "DetailRegister":
        register = cls()
        register.write_numeric(cls.YEAR_FIELD, year)
        register.write(cls.NIF_FIELD, nif)
        register.write(cls.DECLARED_NIF_FIELD, nif)
        register.write(cls.NAME_FIELD, name)
        register.write(cls.COUNTRY_CODE_FIELD, note.broker.country_code)
        register.write(cls.STOCK_ID_FIELD, note.company.isin)
        register.write(cls.ENTITY_NAME_FIELD, note.company.name.upper())
        register.write(cls.ENTITY_COUNTRY_CODE_FIELD, note.company.isin[:2])
        acquired = first_acquisition_date(note, account_notes, year)
        register.write_numeric(cls.FIRST_ACQUISITION_DATE_FIELD, int(acquired.strftime("%Y%m%d")))

        negative, integer, fraction = split_decimal(note.value_in_euro)
        register.write_sign(cls.ACQUISITION_SIGN_FIELD, negative)
        register.write_numeric(cls.ACQUISITION_INT_FIELD, integer)
        register.write_numeric(cls.ACQUISITION_FRACTION_FIELD, fraction)

        _, integer, fraction = split_decimal(note.quantity, truncate=True)
        register.write_numeric(cls.STOCK_QUANTITY_INT_FIELD, integer)
        register.write_numeric(cls.STOCK_QUANTITY_FRACTION_FIELD, fraction)

        register.write_numeric(cls.OWNED_PERCENTAGE_INT_FIELD, cls.FULL_OWNERSHIP)
        register.write_numeric(cls.OWNED_PERCENTAGE_FRACTION_FIELD, 0)
        return register


def first_acquisition_date(note: BalanceNote, account_notes: List[AccountNote], year: int) -> datetime.date:
    """Earliest transaction date of the position's company, or January 1 of the filing year."""
    if not check_position_has_transactions(note, account_notes, year):
        return datetime.date(year, 1, 1)
    return min(account.date for account in account_notes if account.company == note.company)


def create_aeat720_report(info: FinancialInformation) -> bytes:
    """Render the model 720 file for a filer.

    Args:
        info: Filer identity and notes; ``balance_notes`` become detail registers.

    Returns:
        Summary register and detail registers, each followed by a newline.

    Raises:
        FieldEncodingError: if a value does not fit its field.
    """
    full_name = info.full_name
    details = [
        DetailRegister.build(note, info.account_notes, info.year, info.nif, full_name)
        for note in info.balance_notes
    ]
    summary = SummaryRegister.build(info.balance_notes, info.year, info.nif, full_name, info.phone)
    logging.info("Model 720: %d detail register(s)", len(details))
    return b"".join(bytes(register.data) + b"\n" for register in [summary, *details])
