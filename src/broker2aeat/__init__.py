from .aeat720 import DetailRegister, SummaryRegister, create_aeat720_report, first_acquisition_date
from .cli import main
from .d6 import create_d6_form
from .degiro_csv import DegiroCSVParser
from .degiro_pdf import DegiroParser, read_degiro_pdf
from .errors import (
    Broker2AeatError,
    CompanyLookupError,
    FieldEncodingError,
    GrammarError,
    UnknownOperationError,
    UnsupportedInputError,
)
from .ib_csv import IBCSVParser
from .ib_html import IBParser
from .importer import build_financial_information, load_statements, parse_statement
from .models import (
    AccountNote,
    BalanceNote,
    BrokerInformation,
    BrokerOperation,
    Brokers,
    CompanyInfo,
    FinancialInformation,
    PersonalInformation,
)
from .pdf_text import extract_text

__all__ = [
    "AccountNote",
    "BalanceNote",
    "Broker2AeatError",
    "BrokerInformation",
    "BrokerOperation",
    "Brokers",
    "CompanyInfo",
    "CompanyLookupError",
    "DegiroCSVParser",
    "DegiroParser",
    "DetailRegister",
    "FieldEncodingError",
    "FinancialInformation",
    "GrammarError",
    "IBCSVParser",
    "IBParser",
    "PersonalInformation",
    "SummaryRegister",
    "UnknownOperationError",
    "UnsupportedInputError",
    "build_financial_information",
    "create_aeat720_report",
    "create_d6_form",
    "extract_text",
    "first_acquisition_date",
    "load_statements",
    "main",
    "parse_statement",
    "read_degiro_pdf",
]
