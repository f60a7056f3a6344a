import pytest
from solders.pubkey import Pubkey

from core.errors import DecodeError, InvalidStateError, TruncatedDataError
from core.pubkeys import TOKEN_PROGRAM
from interfaces.records import AccountState
from layouts.token import (
    ACCOUNT_SIZE,
    MULTISIG_LAYOUT,
    MULTISIG_SIZE,
    decode_mint,
    decode_multisig,
    decode_token_account,
    extended_account_type,
)

from factories import mint_bytes, token_account_bytes


@pytest.fixture
def keys():
    return {"address": Pubkey.new_unique(), "mint": Pubkey.new_unique(), "owner": Pubkey.new_unique()}


@pytest.mark.parametrize("state", list(AccountState))
def test_every_state_decodes(keys, state):
    data = token_account_bytes(keys["mint"], keys["owner"], amount=42, state=state)
    assert len(data) == ACCOUNT_SIZE

    record = decode_token_account(keys["address"], TOKEN_PROGRAM, data)

    assert record.state is state
    assert record.mint == keys["mint"]
    assert record.owner == keys["owner"]
    assert record.amount == 42
    assert record.decimals is None


def test_optional_fields(keys):
    delegate = Pubkey.new_unique()
    closer = Pubkey.new_unique()
    data = token_account_bytes(
        keys["mint"],
        keys["owner"],
        amount=2_000_000_000,
        delegate=delegate,
        is_native=2_039_280,
        delegated_amount=7,
        close_authority=closer,
    )

    record = decode_token_account(keys["address"], TOKEN_PROGRAM, data)

    assert record.delegate == delegate
    assert record.is_native == 2_039_280
    assert record.delegated_amount == 7
    assert record.close_authority == closer


def test_absent_optionals_are_none(keys):
    record = decode_token_account(
        keys["address"], TOKEN_PROGRAM, token_account_bytes(keys["mint"], keys["owner"])
    )
    assert record.delegate is None
    assert record.is_native is None
    assert record.close_authority is None


def test_unknown_state_is_rejected(keys):
    data = bytearray(token_account_bytes(keys["mint"], keys["owner"]))
    data[108] = 3  # state byte
    with pytest.raises(InvalidStateError) as exc_info:
        decode_token_account(keys["address"], TOKEN_PROGRAM, bytes(data))
    assert exc_info.value.value == 3


@pytest.mark.parametrize("size", [0, 1, 82, ACCOUNT_SIZE - 1])
def test_short_buffer_is_truncated(keys, size):
    data = token_account_bytes(keys["mint"], keys["owner"])[:size]
    with pytest.raises(TruncatedDataError):
        decode_token_account(keys["address"], TOKEN_PROGRAM, data)


def test_invalid_option_tag(keys):
    data = bytearray(token_account_bytes(keys["mint"], keys["owner"]))
    data[72] = 2  # delegate COption tag
    with pytest.raises(DecodeError):
        decode_token_account(keys["address"], TOKEN_PROGRAM, bytes(data))


def test_trailing_bytes_are_ignored(keys):
    data = token_account_bytes(keys["mint"], keys["owner"], amount=5) + bytes([2, 7, 0, 0, 0])
    assert decode_token_account(keys["address"], TOKEN_PROGRAM, data).amount == 5


def test_decode_mint():
    authority = Pubkey.new_unique()
    data = mint_bytes(decimals=9, supply=10**15, mint_authority=authority)

    record = decode_mint(Pubkey.new_unique(), TOKEN_PROGRAM, data)

    assert record.decimals == 9
    assert record.supply == 10**15
    assert record.mint_authority == authority
    assert record.freeze_authority is None
    assert record.is_initialized is True

    with pytest.raises(TruncatedDataError):
        decode_mint(Pubkey.new_unique(), TOKEN_PROGRAM, data[:81])


def test_decode_multisig():
    signers = [Pubkey.new_unique() for _ in range(3)]
    data = MULTISIG_LAYOUT.build(
        {
            "m": 2,
            "n": 3,
            "is_initialized": True,
            "signers": [bytes(s) for s in signers] + [bytes(32)] * 8,
        }
    )
    assert len(data) == MULTISIG_SIZE

    record = decode_multisig(Pubkey.new_unique(), TOKEN_PROGRAM, data)

    assert (record.m, record.n) == (2, 3)
    assert record.signers == tuple(signers)


def test_extended_account_type():
    assert extended_account_type(bytes(ACCOUNT_SIZE)) is None
    assert extended_account_type(bytes(ACCOUNT_SIZE) + b"\x01") == 1
    assert extended_account_type(bytes(ACCOUNT_SIZE) + b"\x02") == 2
    assert extended_account_type(bytes(ACCOUNT_SIZE) + b"\x09") is None
