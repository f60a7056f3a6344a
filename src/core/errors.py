"""
Error taxonomy for the explorer core.

Every exception carries a stable ErrorCategory so the presentation layer can
tell network failures, missing data, corrupt data and bad input apart without
parsing messages.
"""

from enum import Enum


class ErrorCategory(Enum):
    """Stable categories reported to the presentation layer."""

    NETWORK = "network"
    NOT_FOUND = "not_found"
    CORRUPT_DATA = "corrupt_data"
    UNKNOWN_LAYOUT = "unknown_layout"
    INVALID_INPUT = "invalid_input"


class ExplorerError(Exception):
    """Base class for all explorer errors."""

    category: ErrorCategory = ErrorCategory.NETWORK


class NetworkError(ExplorerError):
    """RPC transport failure.

    Transient failures (timeouts, rate limits, 5xx) are retried by the gateway
    and only surface once the retry budget is spent.
    """

    category = ErrorCategory.NETWORK

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class RpcResponseError(NetworkError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, transient: bool = False):
        super().__init__(f"RPC error {code}: {message}", transient=transient)
        self.code = code
        self.rpc_message = message


class DecodeError(ExplorerError):
    """Account or payload bytes do not match the expected layout."""

    category = ErrorCategory.CORRUPT_DATA


class TruncatedDataError(DecodeError):
    """Buffer is shorter than the layout's fixed size."""

    def __init__(self, layout: str, expected: int, actual: int):
        super().__init__(f"{layout} needs at least {expected} bytes, got {actual}")
        self.layout = layout
        self.expected = expected
        self.actual = actual


class InvalidStateError(DecodeError):
    """Token account state byte outside the known variants."""

    def __init__(self, value: int):
        super().__init__(f"Invalid token account state: {value}")
        self.value = value


class MalformedTlvError(DecodeError):
    """A TLV entry declares more bytes than the buffer holds."""

    def __init__(self, offset: int, declared: int, remaining: int):
        super().__init__(
            f"TLV entry at offset {offset} declares {declared} bytes "
            f"but only {remaining} remain"
        )
        self.offset = offset
        self.declared = declared
        self.remaining = remaining


class UnknownLayoutError(DecodeError):
    """No decoder is registered for the account's owner."""

    category = ErrorCategory.UNKNOWN_LAYOUT


class InvalidInputError(ExplorerError):
    """Malformed address, signature or slot text."""

    category = ErrorCategory.INVALID_INPUT


class InvalidLengthError(InvalidInputError):
    def __init__(self, text: str, expected: int, actual: int):
        super().__init__(f"'{text}' decodes to {actual} bytes, expected {expected}")
        self.expected = expected
        self.actual = actual


class InvalidCharacterError(InvalidInputError):
    def __init__(self, text: str, character: str):
        super().__init__(f"'{text}' contains non-base58 character '{character}'")
        self.character = character
