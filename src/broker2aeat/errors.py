class Broker2AeatError(ValueError):
    """Base class for every error raised while reading statements or writing forms."""


class UnsupportedInputError(Broker2AeatError):
    """The content type could not be recognised or its container is malformed."""


class GrammarError(Broker2AeatError):
    """A parser rule could not match the input at some position.

    Args:
        rule: Name of the grammar rule that failed.
        fragment: Input text at the failure position (shortened for the message).
    """

    FRAGMENT_LENGTH = 40

    def __init__(self, rule: str, fragment: str = "") -> None:
        self.rule = rule
        self.fragment = fragment
        shown = fragment[: self.FRAGMENT_LENGTH]
        super().__init__(f"Unable to parse {rule} at {shown!r}")


class UnknownOperationError(GrammarError):
    """Transaction operation code other than buy (C) or sell (V)."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__("broker operation", code)


class CompanyLookupError(Broker2AeatError):
    """A statement symbol has no entry in the instrument table."""

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(f"No company information found for symbol {symbol!r}")


class FieldEncodingError(Broker2AeatError):
    """A value cannot be written into a fixed-width form field."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Field {field}: cannot encode {value!r} ({reason})")
