"""
Block envelope to BlockRecord.
"""

from collections import Counter
from collections.abc import Mapping
from typing import Any

from core.pubkeys import ProgramAddresses
from interfaces.records import BlockRecord


def _fee_reward(block: Mapping[str, Any]) -> tuple[str | None, int]:
    """The leader and its fee reward, taken from the block's Fee reward entry."""
    for reward in block.get("rewards") or []:
        if reward.get("rewardType") == "Fee":
            return reward.get("pubkey"), reward.get("lamports", 0)
    return None, 0


def build_block_record(slot: int, block: Mapping[str, Any]) -> BlockRecord:
    """Summarize a getBlock result.

    A transaction counts as a vote when it has exactly one instruction and that
    instruction targets the vote program. Program invocations count top-level
    instructions only and are ordered by count, highest first.

    Args:
        slot: Slot the block was fetched for
        block: The `result` of getBlock (json encoding, full details)

    Returns:
        BlockRecord
    """
    vote_program = str(ProgramAddresses.VOTE_PROGRAM)
    invocations: Counter[str] = Counter()
    vote = nonvote = compute_units = 0

    for tx in block.get("transactions") or []:
        message = tx["transaction"]["message"]
        keys = message["accountKeys"]
        programs = [keys[ix["programIdIndex"]] for ix in message.get("instructions", [])]

        if len(programs) == 1 and programs[0] == vote_program:
            vote += 1
        else:
            nonvote += 1
        invocations.update(programs)
        compute_units += (tx.get("meta") or {}).get("computeUnitsConsumed") or 0

    leader, fee_rewards = _fee_reward(block)
    return BlockRecord(
        slot=slot,
        parent_slot=block.get("parentSlot", 0),
        blockhash=block.get("blockhash", ""),
        leader=leader,
        fee_rewards=fee_rewards,
        vote_transactions=vote,
        non_vote_transactions=nonvote,
        compute_units=compute_units,
        program_invocations=tuple(
            sorted(invocations.items(), key=lambda kv: (-kv[1], kv[0]))
        ),
    )
