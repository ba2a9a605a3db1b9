import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List

from .errors import UnknownOperationError

EUR_CURRENCY = "EUR"
GBX_CURRENCY = "GBX"
GBP_CURRENCY = "GBP"
SPAIN_COUNTRY_CODE = "ES"


@dataclass(frozen=True)
class CompanyInfo:
    """Security identity: display name and 12-character ISIN."""
    name: str
    isin: str


@dataclass(frozen=True)
class BrokerInformation:
    """Broker identity shared by every note parsed from its statements."""
    name: str
    country_code: str


@dataclass(frozen=True)
class Brokers:
    """Table of the supported brokers, handed to the parsers explicitly."""
    degiro: BrokerInformation = BrokerInformation("Degiro", "NL")
    interactive_brokers: BrokerInformation = BrokerInformation("Interactive Brokers", "IE")


class BrokerOperation(Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def from_code(cls, code: str) -> "BrokerOperation":
        """Map a statement operation letter (C/V, any case) to an operation.

        Raises:
            UnknownOperationError: for any other code.
        """
        upper = code.upper()
        if upper == "C":
            return cls.BUY
        if upper == "V":
            return cls.SELL
        raise UnknownOperationError(code)


@dataclass(frozen=True)
class AccountNote:
    """One stock transaction. Quantity is always non-negative."""
    date: datetime.date
    company: CompanyInfo
    operation: BrokerOperation
    quantity: Decimal
    price: Decimal
    value: Decimal
    commission: Decimal
    broker: BrokerInformation


@dataclass(frozen=True)
class BalanceNote:
    """One year-end position."""
    company: CompanyInfo
    market: str
    quantity: Decimal
    currency: str
    price: Decimal
    value_in_euro: Decimal
    broker: BrokerInformation


@dataclass(frozen=True)
class PersonalInformation:
    """Filer identity supplied by the caller."""
    name: str
    surname: str
    nif: str
    phone: str = ""
    year: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.surname} {self.name}"


@dataclass
class FinancialInformation:
    """Everything one filer declares: identity plus all parsed notes."""
    name: str = ""
    surname: str = ""
    nif: str = ""
    phone: str = ""
    year: int = 0
    balance_notes: List[BalanceNote] = field(default_factory=list)
    account_notes: List[AccountNote] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.surname} {self.name}"
