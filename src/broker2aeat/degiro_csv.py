import io
import logging
from typing import List

import pandas as pd

from .decimals import parse_es_decimal
from .errors import GrammarError
from .models import BalanceNote, BrokerInformation, CompanyInfo

HEADER_PREFIXES = ("Producto", "Product")

# Positional columns of the Degiro portfolio export
NAME_COLUMN = 0
ISIN_COLUMN = 1
QUANTITY_COLUMN = 2
PRICE_COLUMN = 3
LOCAL_VALUE_COLUMN = 4
VALUE_IN_EURO_COLUMN = 5


def is_degiro_csv(text: str) -> bool:
    """Whether the text starts with the header of a Degiro portfolio export."""
    return text.lstrip("\ufeff").startswith(HEADER_PREFIXES)


class DegiroCSVParser:
    """Parser for the Degiro portfolio CSV export (positions only)."""

    def __init__(self, content: str, broker: BrokerInformation) -> None:
        self.content = content
        self.broker = broker

    def _read_table(self) -> pd.DataFrame:
        try:
            table = pd.read_csv(
                io.StringIO(self.content.lstrip("\ufeff")),
                dtype=str,
                keep_default_na=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise GrammarError("degiro csv", str(e)) from e
        if table.shape[1] <= VALUE_IN_EURO_COLUMN:
            raise GrammarError("degiro csv header", ",".join(table.columns))
        return table

    def parse_csv(self) -> List[BalanceNote]:
        """Parse every position row; rows without an ISIN (cash, totals) are skipped.

        Returns:
            Balance notes in file order, with an empty market.
        """
        notes = []
        for row in self._read_table().itertuples(index=False):
            isin = row[ISIN_COLUMN].strip()
            if not isin:
                logging.debug("Skipping Degiro CSV row without ISIN: %s", row[NAME_COLUMN])
                continue
            # "USD 2541.00": currency code before the first space
            currency = row[LOCAL_VALUE_COLUMN].split(" ", 1)[0]
            notes.append(BalanceNote(
                company=CompanyInfo(name=row[NAME_COLUMN], isin=isin),
                market="",
                quantity=parse_es_decimal(row[QUANTITY_COLUMN], "quantity"),
                currency=currency,
                price=parse_es_decimal(row[PRICE_COLUMN], "price"),
                value_in_euro=parse_es_decimal(row[VALUE_IN_EURO_COLUMN], "value in euro"),
                broker=self.broker,
            ))
        logging.info("Degiro CSV: %d position(s)", len(notes))
        return notes
