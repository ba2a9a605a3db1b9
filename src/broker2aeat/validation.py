import logging
import re
from collections import Counter
from decimal import Decimal
from typing import List

from .models import AccountNote, BalanceNote, PersonalInformation

_NIF_LENGTH = 9
_PHONE_RE = re.compile(r"\d{9}")


def check_rescaled_block_total(notes: List[BalanceNote], total_in_euro: Decimal) -> None:
    """Log when rescaled EUR values drift from the block total beyond rounding."""
    rescaled_sum = sum((note.value_in_euro for note in notes), Decimal("0.00"))
    tolerance = Decimal("0.01") * len(notes)
    if abs(rescaled_sum - total_in_euro) > tolerance:
        logging.error(
            "Data inconsistency: rescaled positions sum to %s EUR but the block total is %s EUR.",
            rescaled_sum,
            total_in_euro,
        )


def check_duplicate_positions(balance_notes: List[BalanceNote]) -> None:
    """Log positions reported more than once by the same broker (e.g. a file loaded twice)."""
    counts = Counter((note.broker.name, note.company.isin) for note in balance_notes)
    for (broker, isin), count in sorted(counts.items()):
        if count > 1 and isin:
            logging.warning(
                "Position %s from %s appears %d times; check for overlapping statements.",
                isin,
                broker,
                count,
            )


def check_position_has_transactions(note: BalanceNote, account_notes: List[AccountNote], year: int) -> bool:
    """Check whether a position has a transaction to date its first acquisition."""
    if any(account.company == note.company for account in account_notes):
        return True
    logging.info(
        "No transaction found for %s (%s); first acquisition date set to %d-01-01.",
        note.company.name,
        note.company.isin,
        year,
    )
    return False


def check_personal_information(personal: PersonalInformation) -> None:
    """Log filer data that the tax office is likely to reject."""
    if len(personal.nif) != _NIF_LENGTH:
        logging.warning("NIF %r does not have %d characters.", personal.nif, _NIF_LENGTH)
    if personal.phone and not _PHONE_RE.fullmatch(personal.phone):
        logging.warning("Phone %r is not a 9-digit number.", personal.phone)
