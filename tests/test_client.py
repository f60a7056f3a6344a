import asyncio
import random

import pytest
from solders.pubkey import Pubkey
from solders.signature import Signature

from core.client import RpcGateway, parse_account_envelope
from core.errors import NetworkError, RpcResponseError
from core.pubkeys import TOKEN_PROGRAM
from interfaces.records import NotFound, RawAccount

from factories import FakeRpcGateway, RpcErrorReply, account_value


def failing_then(result, failures: int, error=None):
    """Handler that fails `failures` times before answering."""
    state = {"calls": 0}

    def handler(params):
        state["calls"] += 1
        if state["calls"] <= failures:
            return error if error is not None else NetworkError("HTTP 503", transient=True)
        return result

    return handler


async def test_transient_failures_are_retried(gateway):
    gateway.on("getSlot", failing_then(1234, failures=2))

    assert await gateway.call("getSlot") == 1234
    assert len(gateway.calls_to("getSlot")) == 3


async def test_retries_are_bounded():
    gateway = FakeRpcGateway(max_retries=3)
    gateway.on("getSlot", lambda params: NetworkError("timed out", transient=True))

    with pytest.raises(NetworkError) as exc_info:
        await gateway.call("getSlot")

    assert exc_info.value.transient
    assert len(gateway.calls_to("getSlot")) == 4


async def test_transient_rpc_codes_are_retried(gateway):
    gateway.on("getSlot", failing_then(7, failures=1, error=RpcErrorReply(-32005, "node is behind")))

    assert await gateway.call("getSlot") == 7
    assert len(gateway.calls_to("getSlot")) == 2


async def test_terminal_errors_are_not_retried(gateway):
    gateway.on("getSlot", lambda params: RpcErrorReply(-32602, "invalid params"))

    with pytest.raises(RpcResponseError) as exc_info:
        await gateway.call("getSlot")

    assert exc_info.value.code == -32602
    assert not exc_info.value.transient
    assert len(gateway.calls_to("getSlot")) == 1


async def test_terminal_transport_error_is_not_retried(gateway):
    gateway.on("getSlot", lambda params: NetworkError("HTTP 403", transient=False))

    with pytest.raises(NetworkError):
        await gateway.call("getSlot")
    assert len(gateway.calls_to("getSlot")) == 1


async def test_fetch_account(gateway):
    address = Pubkey.new_unique()
    gateway.add_account(address, TOKEN_PROGRAM, b"\x01\x02\x03", lamports=99)

    account = await gateway.fetch_account(address)

    assert account == RawAccount(
        address=address,
        owner=TOKEN_PROGRAM,
        data=b"\x01\x02\x03",
        lamports=99,
        executable=False,
        rent_epoch=18446744073709551615,
    )
    params = gateway.calls_to("getAccountInfo")[0]
    assert params[1]["encoding"] == "base64"


async def test_missing_account_is_not_found_and_not_retried(gateway):
    address = Pubkey.new_unique()

    result = await gateway.fetch_account(address)

    assert result == NotFound(address)
    assert not result
    assert len(gateway.calls) == 1


async def test_batch_keeps_order_with_missing_entry(gateway):
    addresses = [Pubkey.new_unique() for _ in range(5)]
    for i, address in enumerate(addresses):
        if i != 2:
            gateway.add_account(address, TOKEN_PROGRAM, bytes([i]))

    results = await gateway.fetch_accounts_batch(addresses)

    assert len(results) == 5
    assert results[2] == NotFound(addresses[2])
    for i in (0, 1, 3, 4):
        assert isinstance(results[i], RawAccount)
        assert results[i].address == addresses[i]
        assert results[i].data == bytes([i])


class SlowGateway(FakeRpcGateway):
    """Answers getAccountInfo after a per-address delay and tracks concurrency."""

    def __init__(self, delays, **kwargs):
        super().__init__(**kwargs)
        self.delays = delays
        self.in_flight = 0
        self.peak = 0

    async def _post(self, body):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(body["params"][0], 0))
            return await super()._post(body)
        finally:
            self.in_flight -= 1


async def test_batch_order_is_independent_of_completion_order():
    addresses = [Pubkey.new_unique() for _ in range(6)]
    # Earlier requests finish last
    delays = {str(a): 0.01 * (len(addresses) - i) for i, a in enumerate(addresses)}
    gateway = SlowGateway(delays)
    for i, address in enumerate(addresses):
        gateway.add_account(address, TOKEN_PROGRAM, bytes([i]))

    results = await gateway.fetch_accounts_batch(addresses)

    assert [r.data for r in results] == [bytes([i]) for i in range(6)]


async def test_batch_respects_worker_limit():
    addresses = [Pubkey.new_unique() for _ in range(10)]
    gateway = SlowGateway({str(a): 0.01 for a in addresses}, max_workers=3)

    results = await gateway.fetch_accounts_batch(addresses)

    assert all(isinstance(r, NotFound) for r in results)
    assert gateway.peak <= 3


async def test_batch_isolates_failures(gateway):
    addresses = [Pubkey.new_unique() for _ in range(3)]
    for address in addresses:
        gateway.add_account(address, TOKEN_PROGRAM, b"ok")
    broken = str(addresses[1])

    def handler(params):
        if params[0] == broken:
            return NetworkError("HTTP 400", transient=False)
        return {"value": gateway.accounts[params[0]]}

    gateway.on("getAccountInfo", handler)

    results = await gateway.fetch_accounts_batch(addresses)

    assert isinstance(results[0], RawAccount)
    assert isinstance(results[1], NetworkError)
    assert isinstance(results[2], RawAccount)


async def test_batch_of_nothing(gateway):
    assert await gateway.fetch_accounts_batch([]) == []


async def test_missing_block_and_transaction(gateway):
    gateway.on("getBlock", lambda params: RpcErrorReply(-32007, "slot was skipped"))
    gateway.on("getTransaction", lambda params: None)

    assert await gateway.fetch_block(100) == NotFound("100", what="block")
    assert await gateway.fetch_transaction(Signature.default()) == NotFound(
        str(Signature.default()), what="transaction"
    )
    assert len(gateway.calls_to("getBlock")) == 1


async def test_transaction_request_shape(gateway):
    gateway.on("getTransaction", lambda params: {"slot": 1})

    await gateway.fetch_transaction(Signature.default())

    options = gateway.calls_to("getTransaction")[0][1]
    assert options["maxSupportedTransactionVersion"] == 0
    assert options["encoding"] == "json"


def test_backoff_is_bounded():
    random.seed(3)
    gateway = RpcGateway("http://localhost:8899", base_delay=0.5, max_delay=2.0)

    for _ in range(20):
        assert 0.25 <= gateway._backoff_delay(0) <= 0.5
        assert 0.5 <= gateway._backoff_delay(1) <= 1.0
        assert 1.0 <= gateway._backoff_delay(10) <= 2.0


def test_from_config():
    cfg = {
        "rpc_endpoint": "http://localhost:8899",
        "commitment": "finalized",
        "retries": {"max_attempts": 2, "base_delay": 0.1, "max_delay": 1.0},
        "timeouts": {"request": 3.0},
        "concurrency": {"max_workers": 4},
    }
    gateway = RpcGateway.from_config(cfg)
    assert gateway.max_retries == 2
    assert gateway.max_workers == 4
    assert gateway.commitment == "finalized"


def test_parse_account_envelope_rejects_other_encodings():
    value = account_value(TOKEN_PROGRAM, b"abc")
    value["data"] = [value["data"][0], "base58"]
    with pytest.raises(NetworkError):
        parse_account_envelope(Pubkey.new_unique(), value)


@pytest.mark.parametrize(
    "patch",
    [
        {"owner": "not-a-pubkey"},
        {"owner": None},
        {"data": "abc"},
        {"data": ["***", "base64"]},
        {"data": ["AAAA"]},
        {"lamports": "lots"},
    ],
)
def test_parse_account_envelope_rejects_malformed_objects(patch):
    value = account_value(TOKEN_PROGRAM, b"abc")
    value.update(patch)
    with pytest.raises(NetworkError) as exc_info:
        parse_account_envelope(Pubkey.new_unique(), value)
    assert not exc_info.value.transient


async def test_batch_keeps_going_past_malformed_account(gateway):
    addresses = [Pubkey.new_unique() for _ in range(3)]
    for address in addresses:
        gateway.add_account(address, TOKEN_PROGRAM, b"ok")
    gateway.accounts[str(addresses[1])]["owner"] = "not-a-pubkey"

    results = await gateway.fetch_accounts_batch(addresses)

    assert isinstance(results[0], RawAccount)
    assert isinstance(results[1], NetworkError)
    assert isinstance(results[2], RawAccount)
    assert results[2].data == b"ok"
