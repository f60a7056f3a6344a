import pytest

from core.errors import InvalidInputError, NetworkError
from core.pubkeys import SYSTEM_PROGRAM, VOTE_PROGRAM
from explorer.blocks import build_block_record
from explorer.service import Explorer
from interfaces.records import BlockRecord, NotFound

from factories import RpcErrorReply

VOTE = str(VOTE_PROGRAM)
SYSTEM = str(SYSTEM_PROGRAM)
COMPUTE = "ComputeBudget111111111111111111111111111111"


def tx(programs: list[str], compute_units: int | None = 100) -> dict:
    keys = ["Signer1111111111111111111111111111111111111"] + programs
    return {
        "transaction": {
            "message": {
                "accountKeys": keys,
                "instructions": [{"programIdIndex": i + 1} for i in range(len(programs))],
            }
        },
        "meta": {"computeUnitsConsumed": compute_units},
    }


def block(transactions, rewards=None) -> dict:
    return {
        "parentSlot": 99,
        "blockhash": "hash",
        "transactions": transactions,
        "rewards": rewards if rewards is not None else [
            {"pubkey": "Staker", "lamports": 10, "rewardType": "Staking"},
            {"pubkey": "Leader", "lamports": 7_500, "rewardType": "Fee"},
        ],
    }


def test_block_summary():
    record = build_block_record(
        100,
        block([tx([VOTE]), tx([VOTE]), tx([COMPUTE, SYSTEM]), tx([VOTE, SYSTEM], compute_units=None)]),
    )

    assert record.slot == 100
    assert record.parent_slot == 99
    assert record.leader == "Leader"
    assert record.fee_rewards == 7_500
    assert record.vote_transactions == 2
    assert record.non_vote_transactions == 2
    assert record.total_transactions == 4
    assert record.compute_units == 300
    assert record.program_invocations == ((VOTE, 3), (SYSTEM, 2), (COMPUTE, 1))


def test_block_without_fee_reward():
    record = build_block_record(5, block([], rewards=[]))
    assert record.leader is None
    assert record.fee_rewards == 0
    assert record.total_transactions == 0


async def test_explore_block_retries_failed_fetches(gateway):
    attempts = {"n": 0}

    def handler(params):
        attempts["n"] += 1
        if attempts["n"] < 3:
            return NetworkError("HTTP 400", transient=False)
        return block([tx([VOTE])])

    gateway.on("getBlock", handler)

    record = await Explorer(gateway, block_attempts=5).explore_block(100)

    assert isinstance(record, BlockRecord)
    assert attempts["n"] == 3


async def test_explore_block_gives_up(gateway):
    gateway.on("getBlock", lambda params: NetworkError("HTTP 400", transient=False))

    with pytest.raises(NetworkError):
        await Explorer(gateway, block_attempts=2).explore_block(100)
    assert len(gateway.calls_to("getBlock")) == 2


async def test_skipped_slot_is_not_found(gateway):
    gateway.on("getBlock", lambda params: RpcErrorReply(-32009, "skipped"))
    assert isinstance(await Explorer(gateway).explore_block(7), NotFound)
    assert len(gateway.calls_to("getBlock")) == 1


async def test_explore_block_range(gateway):
    gateway.on("getBlock", lambda params: RpcErrorReply(-32007) if params[0] == 11 else block([]))

    results = await Explorer(gateway).explore_blocks(10, 12)

    assert [type(r) for r in results] == [BlockRecord, NotFound, BlockRecord]
    assert [r.slot for r in (results[0], results[2])] == [10, 12]


async def test_invalid_slots(gateway):
    with pytest.raises(InvalidInputError):
        await Explorer(gateway).explore_block(-1)
    with pytest.raises(InvalidInputError):
        await Explorer(gateway).explore_blocks(10, 9)
