"""
Fixed layouts of the SPL token programs.

Token accounts (165 bytes), mints (82 bytes) and multisigs (355 bytes) share
the same base layout under both the original token program and token-2022.
Token-2022 accounts may continue past the base layout with an account-type
byte at offset 165 and a TLV extension region after it.
"""

from typing import Final

from construct import Array, Bytes, Flag, Int8ul, Int32ul, Int64ul, Struct
from solders.pubkey import Pubkey

from core.errors import DecodeError, InvalidStateError, TruncatedDataError
from interfaces.records import (
    AccountState,
    AccountType,
    MintRecord,
    MultisigRecord,
    TokenAccountRecord,
)

ACCOUNT_SIZE: Final[int] = 165
MINT_SIZE: Final[int] = 82
MULTISIG_SIZE: Final[int] = 355
MAX_SIGNERS: Final[int] = 11

# Extended accounts: base layout (a mint is zero-padded up to ACCOUNT_SIZE),
# then one account-type byte, then TLV entries.
ACCOUNT_TYPE_OFFSET: Final[int] = ACCOUNT_SIZE
TLV_START: Final[int] = ACCOUNT_TYPE_OFFSET + 1

ACCOUNT_LAYOUT = Struct(
    "mint" / Bytes(32),
    "owner" / Bytes(32),
    "amount" / Int64ul,
    "delegate_option" / Int32ul,
    "delegate" / Bytes(32),
    "state" / Int8ul,
    "is_native_option" / Int32ul,
    "is_native" / Int64ul,
    "delegated_amount" / Int64ul,
    "close_authority_option" / Int32ul,
    "close_authority" / Bytes(32),
)

MINT_LAYOUT = Struct(
    "mint_authority_option" / Int32ul,
    "mint_authority" / Bytes(32),
    "supply" / Int64ul,
    "decimals" / Int8ul,
    "is_initialized" / Flag,
    "freeze_authority_option" / Int32ul,
    "freeze_authority" / Bytes(32),
)

MULTISIG_LAYOUT = Struct(
    "m" / Int8ul,
    "n" / Int8ul,
    "is_initialized" / Flag,
    "signers" / Array(MAX_SIGNERS, Bytes(32)),
)


def _coption(tag: int, value, field: str):
    """Unwrap a COption: 4-byte tag, 0 = None, 1 = Some."""
    if tag == 0:
        return None
    if tag == 1:
        return value
    raise DecodeError(f"Invalid option tag {tag} for {field}")


def _coption_pubkey(tag: int, raw: bytes, field: str) -> Pubkey | None:
    value = _coption(tag, raw, field)
    return Pubkey.from_bytes(value) if value is not None else None


def decode_token_account(
    address: Pubkey, program_id: Pubkey, data: bytes
) -> TokenAccountRecord:
    """Decode the fixed 165-byte token account body.

    Bytes after the body (extensions) are ignored here.

    Raises:
        TruncatedDataError: If data is shorter than ACCOUNT_SIZE
        InvalidStateError: If the state byte is not a known AccountState
    """
    if len(data) < ACCOUNT_SIZE:
        raise TruncatedDataError("token account", ACCOUNT_SIZE, len(data))

    parsed = ACCOUNT_LAYOUT.parse(data[:ACCOUNT_SIZE])

    try:
        state = AccountState(parsed.state)
    except ValueError:
        raise InvalidStateError(parsed.state) from None

    return TokenAccountRecord(
        address=address,
        program_id=program_id,
        mint=Pubkey.from_bytes(parsed.mint),
        owner=Pubkey.from_bytes(parsed.owner),
        amount=parsed.amount,
        delegate=_coption_pubkey(parsed.delegate_option, parsed.delegate, "delegate"),
        state=state,
        is_native=_coption(parsed.is_native_option, parsed.is_native, "is_native"),
        delegated_amount=parsed.delegated_amount,
        close_authority=_coption_pubkey(
            parsed.close_authority_option, parsed.close_authority, "close_authority"
        ),
    )


def decode_mint(address: Pubkey, program_id: Pubkey, data: bytes) -> MintRecord:
    """Decode the fixed 82-byte mint body.

    Raises:
        TruncatedDataError: If data is shorter than MINT_SIZE
    """
    if len(data) < MINT_SIZE:
        raise TruncatedDataError("mint", MINT_SIZE, len(data))

    parsed = MINT_LAYOUT.parse(data[:MINT_SIZE])
    return MintRecord(
        address=address,
        program_id=program_id,
        mint_authority=_coption_pubkey(
            parsed.mint_authority_option, parsed.mint_authority, "mint_authority"
        ),
        supply=parsed.supply,
        decimals=parsed.decimals,
        is_initialized=parsed.is_initialized,
        freeze_authority=_coption_pubkey(
            parsed.freeze_authority_option, parsed.freeze_authority, "freeze_authority"
        ),
    )


def decode_multisig(address: Pubkey, program_id: Pubkey, data: bytes) -> MultisigRecord:
    """Decode a 355-byte multisig; only the first `n` signer slots are returned."""
    if len(data) < MULTISIG_SIZE:
        raise TruncatedDataError("multisig", MULTISIG_SIZE, len(data))

    parsed = MULTISIG_LAYOUT.parse(data[:MULTISIG_SIZE])
    if parsed.n > MAX_SIGNERS or parsed.m > parsed.n:
        raise DecodeError(f"Invalid multisig: m={parsed.m}, n={parsed.n}")

    return MultisigRecord(
        address=address,
        program_id=program_id,
        m=parsed.m,
        n=parsed.n,
        is_initialized=parsed.is_initialized,
        signers=tuple(Pubkey.from_bytes(s) for s in parsed.signers[: parsed.n]),
    )


def extended_account_type(data: bytes) -> AccountType | None:
    """Read the account-type byte of an extended token-2022 account.

    Returns:
        The AccountType, or None if data has no extension area or the byte
        holds an unknown value
    """
    if len(data) <= ACCOUNT_TYPE_OFFSET:
        return None
    try:
        return AccountType(data[ACCOUNT_TYPE_OFFSET])
    except ValueError:
        return None


def extension_region(data: bytes) -> bytes:
    """Bytes of the TLV region of an extended account (empty for base layouts)."""
    return bytes(data[TLV_START:])
