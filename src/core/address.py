"""
Base-58 codec for public keys and transaction signatures.

Validation is limited to the alphabet and the decoded length; base-58 text on
Solana carries no checksum.
"""

from typing import Final

import base58
from solders.pubkey import Pubkey
from solders.signature import Signature

from core.errors import InvalidCharacterError, InvalidLengthError

PUBKEY_LENGTH: Final[int] = 32
SIGNATURE_LENGTH: Final[int] = 64

_ALPHABET: Final[frozenset[str]] = frozenset(base58.BITCOIN_ALPHABET.decode("ascii"))


class AddressCodec:
    """Encode and decode fixed-size keys to and from base-58 text."""

    @staticmethod
    def encode(raw: bytes, length: int = PUBKEY_LENGTH) -> str:
        """Encode raw key bytes as base-58.

        Args:
            raw: Key bytes, exactly `length` long
            length: Expected byte length

        Returns:
            Base-58 text
        """
        if len(raw) != length:
            raise ValueError(f"Expected {length} bytes, got {len(raw)}")
        return base58.b58encode(bytes(raw)).decode("ascii")

    @staticmethod
    def decode(text: str, length: int = PUBKEY_LENGTH) -> bytes:
        """Decode base-58 text into raw key bytes.

        Args:
            text: Base-58 text
            length: Expected decoded byte length

        Returns:
            Decoded bytes

        Raises:
            InvalidCharacterError: If the text contains a non-base58 character
            InvalidLengthError: If the decoded value is not `length` bytes
        """
        for character in text:
            if character not in _ALPHABET:
                raise InvalidCharacterError(text, character)

        raw = base58.b58decode(text) if text else b""
        if len(raw) != length:
            raise InvalidLengthError(text, length, len(raw))
        return raw


def encode_pubkey(raw: bytes) -> str:
    return AddressCodec.encode(raw, PUBKEY_LENGTH)


def decode_pubkey(text: str) -> bytes:
    return AddressCodec.decode(text, PUBKEY_LENGTH)


def parse_pubkey(text: str) -> Pubkey:
    """Validate base-58 text and return it as a Pubkey."""
    return Pubkey.from_bytes(AddressCodec.decode(text.strip(), PUBKEY_LENGTH))


def parse_signature(text: str) -> Signature:
    """Validate base-58 text and return it as a transaction Signature."""
    return Signature.from_bytes(AddressCodec.decode(text.strip(), SIGNATURE_LENGTH))
