"""Row state machine shared by the Interactive Brokers HTML and CSV parsers.

Statement tables list positions (or trades) grouped by asset class and, within
the stocks group, by currency. Each row is classified into a ``RowKind``; the
pure ``transition`` function maps (state, row kind, active currency) to the
next state plus the effect the caller applies to the pending currency block.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Tuple

from .decimals import round_dp
from .errors import GrammarError
from .models import EUR_CURRENCY, BalanceNote
from .validation import check_rescaled_block_total


class NoteState(Enum):
    INVALID = "invalid"
    STOCKS = "stocks"
    NOTE = "note"
    TOTAL = "total"


class RowKind(Enum):
    STOCKS_MARKER = "stocks marker"       # asset-class header naming stocks
    ASSET_HEADER = "asset header"         # any other asset-class header
    CURRENCY_HEADER = "currency header"   # opens a currency block
    DATA = "data"
    TOTAL = "total"
    OTHER = "other"


class Effect(Enum):
    NONE = "none"
    OPEN_BLOCK = "open block"             # flush pending notes, adopt the row currency
    EMIT_NOTE = "emit note"
    FLUSH = "flush"
    RESCALE_AND_FLUSH = "rescale and flush"


class Row(NamedTuple):
    kind: RowKind
    currency: Optional[str] = None
    payload: Any = None


def transition(state: NoteState, kind: RowKind, currency: Optional[str]) -> Tuple[NoteState, Effect]:
    """Next state and effect for a row of the given kind.

    Args:
        state: Current state.
        kind: Classification of the incoming row.
        currency: Currency of the open block, if any.

    Returns:
        Tuple of (next state, effect).
    """
    if state is NoteState.INVALID:
        if kind is RowKind.STOCKS_MARKER:
            return NoteState.STOCKS, Effect.NONE
        return NoteState.INVALID, Effect.NONE

    if state is NoteState.STOCKS:
        if kind is RowKind.CURRENCY_HEADER:
            return NoteState.NOTE, Effect.OPEN_BLOCK
        if kind is RowKind.STOCKS_MARKER:
            return NoteState.STOCKS, Effect.NONE
        return NoteState.INVALID, Effect.NONE

    if state is NoteState.NOTE:
        if kind is RowKind.DATA:
            return NoteState.NOTE, Effect.EMIT_NOTE
        if kind is RowKind.TOTAL:
            if currency == EUR_CURRENCY:
                return NoteState.STOCKS, Effect.FLUSH
            return NoteState.TOTAL, Effect.NONE
        if kind is RowKind.CURRENCY_HEADER:
            return NoteState.NOTE, Effect.OPEN_BLOCK
        if kind is RowKind.STOCKS_MARKER:
            return NoteState.STOCKS, Effect.FLUSH
        if kind is RowKind.ASSET_HEADER:
            return NoteState.INVALID, Effect.FLUSH
        return NoteState.NOTE, Effect.NONE

    # NoteState.TOTAL: the row after a foreign-currency total carries its EUR total
    if kind is RowKind.TOTAL:
        return NoteState.STOCKS, Effect.RESCALE_AND_FLUSH
    return NoteState.INVALID, Effect.FLUSH


def position_quantity(quantity: Decimal, mult: Decimal) -> Decimal:
    """Held quantity of a position row (quantity times contract multiplier).

    Raises:
        GrammarError: for short positions, which notes cannot represent.
    """
    held = quantity * mult
    if held < 0:
        raise GrammarError("position quantity", f"short position {quantity} x {mult}")
    return held


def rescale_balance_notes(notes: List[BalanceNote], total_in_euro: Decimal) -> List[BalanceNote]:
    """Distribute a block's EUR total over its notes.

    Each note's ``value_in_euro`` becomes ``value_in_euro * total / S`` rounded
    to 2 places, where S is the sum of ``price * quantity`` over the block.
    """
    local_total = sum((note.price * note.quantity for note in notes), Decimal("0.00"))
    if local_total == 0:
        logging.warning("Currency block with zero market value; EUR values left unscaled")
        return list(notes)
    rescaled = [
        replace(note, value_in_euro=round_dp(note.value_in_euro * total_in_euro / local_total, 2))
        for note in notes
    ]
    check_rescaled_block_total(rescaled, total_in_euro)
    return rescaled


def collect_balance_notes(
    rows: Iterable[Row],
    parse_note: Callable[[Any, str], BalanceNote],
    read_total: Callable[[Any], Decimal],
) -> List[BalanceNote]:
    """Run the state machine over position rows and gather the finished notes.

    Args:
        rows: Classified rows in table order.
        parse_note: Builds a note from a data row payload and the block currency.
        read_total: Reads the EUR total from a total row payload.

    Returns:
        Notes of every closed block, foreign-currency blocks rescaled to EUR.

    Raises:
        GrammarError: if a currency block is still open when the rows run out.
    """
    state = NoteState.INVALID
    currency: Optional[str] = None
    pending: List[BalanceNote] = []
    notes: List[BalanceNote] = []
    for row in rows:
        state, effect = transition(state, row.kind, currency)
        if effect is Effect.OPEN_BLOCK:
            notes.extend(pending)
            pending = []
            currency = row.currency
        elif effect is Effect.EMIT_NOTE:
            pending.append(parse_note(row.payload, currency))
        elif effect is Effect.FLUSH:
            notes.extend(pending)
            pending = []
        elif effect is Effect.RESCALE_AND_FLUSH:
            notes.extend(rescale_balance_notes(pending, read_total(row.payload)))
            pending = []
    if pending:
        raise GrammarError("open positions total", f"{currency} block without total")
    return notes


def collect_emitted(rows: Iterable[Row], parse_note: Callable[[Any, str], Any]) -> List[Any]:
    """Run the state machine and return one parsed item per emitted data row."""
    state = NoteState.INVALID
    currency: Optional[str] = None
    items = []
    for row in rows:
        state, effect = transition(state, row.kind, currency)
        if effect is Effect.OPEN_BLOCK:
            currency = row.currency
        elif effect is Effect.EMIT_NOTE:
            items.append(parse_note(row.payload, currency))
    return items
