import os

import anyio
import pytest
from fakes import FakeBackend, make_intent, make_log

from fastsettle import (
    FAST_SETTLEMENT_V3_ABI,
    AccountSigner,
    Address,
    Amount,
    BlockLabel,
    CallOptions,
    ExecutorUpdated,
    FastSettlementV3,
    FilterOptions,
    IntentExecuted,
    LogDecodingError,
    LogEntry,
    LogTopic,
    SwapCall,
    SwapTargetsUpdated,
    TransactOptions,
    TreasuryUpdated,
    TxHash,
    WatchOptions,
    abi,
)
from fastsettle._abi_types import encode_args


def address_topic(address: Address) -> LogTopic:
    return LogTopic(abi.address.encode_to_topic(address))


async def test_execute_with_eth(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    intent = make_intent()
    swap_call = SwapCall(to=Address(os.urandom(20)), value=5, data=b"\xde\xad")
    options = TransactOptions(signer=AccountSigner.create(), value=Amount(1000))

    tx_hash = await proxy.execute_with_eth(intent, swap_call, options)

    assert isinstance(tx_hash, TxHash)
    ((call, call_options),) = backend.transactions
    expected = FAST_SETTLEMENT_V3_ABI.method.executeWithETH(intent.to_abi(), swap_call.to_abi())
    assert call.data_bytes == expected.data_bytes
    assert call.data_bytes[:4] == bytes.fromhex("1fb7a307")
    assert call.contract_address == contract_address
    assert call.payable
    assert call_options is options


async def test_typed_transactions(proxy: FastSettlementV3, backend: FakeBackend) -> None:
    method = FAST_SETTLEMENT_V3_ABI.method
    token = Address(os.urandom(20))
    target = Address(os.urandom(20))
    intent = make_intent()
    swap_call = SwapCall(to=target, value=0, data=b"")
    signature = os.urandom(65)

    await proxy.execute_with_permit(intent, signature, swap_call)
    await proxy.rescue_tokens(token, 10)
    await proxy.set_executor(target)
    await proxy.set_swap_targets((target, token), iter([True, False]))
    await proxy.set_treasury(token)

    assert [call.data_bytes for call, _options in backend.transactions] == [
        method.executeWithPermit(intent.to_abi(), signature, swap_call.to_abi()).data_bytes,
        method.rescueTokens(token, 10).data_bytes,
        method.setExecutor(target).data_bytes,
        method.setSwapTargets([target, token], [True, False]).data_bytes,
        method.setTreasury(token).data_bytes,
    ]
    # Default options are used when none are given
    assert all(options == TransactOptions() for _call, options in backend.transactions)


async def test_encoding_errors_do_not_reach_backend(
    proxy: FastSettlementV3, backend: FakeBackend
) -> None:
    with pytest.raises(ValueError, match="must correspond to a non-negative integer"):
        await proxy.rescue_tokens(Address(os.urandom(20)), -1)
    with pytest.raises(TypeError, match="must correspond to an `Address`-type value"):
        await proxy.set_executor(bytes(20))  # type: ignore[arg-type]
    with pytest.raises(TypeError, match="too many positional arguments"):
        await proxy.transact("setTreasury", Address(os.urandom(20)), 1)
    with pytest.raises(KeyError):
        await proxy.transact("withdraw")
    assert backend.transactions == []


async def test_simulate(proxy: FastSettlementV3, backend: FakeBackend) -> None:
    method = FAST_SETTLEMENT_V3_ABI.method.executeWithETH
    backend.call_result = encode_args(
        (method.outputs.types[0], 1000), (method.outputs.types[1], 10)
    )
    intent = make_intent()
    swap_call = SwapCall(to=Address(os.urandom(20)), value=0, data=b"")
    options = CallOptions(sender=Address(os.urandom(20)), value=Amount(1000))

    assert await proxy.simulate_execute_with_eth(intent, swap_call, options) == (1000, 10)
    assert await proxy.simulate_execute_with_permit(intent, b"\x00" * 65, swap_call) == (1000, 10)

    (call1, options1), (call2, options2) = backend.calls
    assert call1.data_bytes[:4] == bytes.fromhex("1fb7a307")
    assert options1 is options
    assert call2.data_bytes[:4] == bytes.fromhex("02c52a55")
    assert options2 == CallOptions()


async def test_call_propagates_backend_errors(
    proxy: FastSettlementV3, backend: FakeBackend
) -> None:
    backend.call_error = RuntimeError("backend failure")
    with pytest.raises(RuntimeError, match="backend failure"):
        await proxy.call("rescueTokens", Address(os.urandom(20)), 1)
    assert len(backend.calls) == 1


async def test_transfer(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    options = TransactOptions(value=Amount.ether(1))
    await proxy.transfer(options)
    assert backend.transfers == [(contract_address, options)]


async def test_with_options(proxy: FastSettlementV3, backend: FakeBackend) -> None:
    signer = AccountSigner.create()
    transact_options = TransactOptions(signer=signer, gas=100000)
    call_options = CallOptions(block=BlockLabel.PENDING)

    bound = proxy.with_options(transact_options=transact_options)
    assert bound.transact_options is transact_options
    assert bound.call_options is proxy.call_options
    assert bound.address == proxy.address

    bound = bound.with_options(call_options=call_options)
    assert bound.transact_options is transact_options
    assert bound.call_options is call_options

    await bound.set_treasury(Address(os.urandom(20)))
    # Explicit options take precedence
    explicit = TransactOptions()
    await bound.set_treasury(Address(os.urandom(20)), explicit)
    assert [options for _call, options in backend.transactions] == [transact_options, explicit]


async def test_filter_intent_executed_by_user(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    user = Address(b"\xaa" * 20)
    other_user = Address(b"\xbb" * 20)

    def log(user: Address, received: int, surplus: int) -> LogEntry:
        return make_log(
            contract_address,
            "IntentExecuted",
            user=user,
            inputToken=Address(os.urandom(20)),
            outputToken=Address(os.urandom(20)),
            inputAmt=100,
            userAmtOut=90,
            received=received,
            surplus=surplus,
        )

    matching = log(user, 95, 5)
    backend.logs = [log(other_user, 200, 20), matching]

    async with proxy.filter_intent_executed(user=[user]) as events:
        records = [record async for record in events]

    assert len(records) == 1
    (record,) = records
    assert record.user == user
    assert (record.received, record.surplus) == (95, 5)
    assert record.raw is matching

    (query,) = backend.queries
    topic = FAST_SETTLEMENT_V3_ABI.event.IntentExecuted.topic
    # Only the set criteria are encoded, the rest of the topics are wildcards
    assert query.event_filter.topics == ((topic,), (address_topic(user),))
    assert query.address == contract_address
    assert (query.from_block, query.to_block) == (0, BlockLabel.LATEST)


async def test_filter_criteria(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    old1 = Address(os.urandom(20))
    old2 = Address(os.urandom(20))
    new = Address(os.urandom(20))
    topic = FAST_SETTLEMENT_V3_ABI.event.ExecutorUpdated.topic

    events = proxy.filter_executor_updated(
        FilterOptions(from_block=10, to_block=20), old_executor=[old1, old2], new_executor=[new]
    )
    async with events:
        pass
    events = proxy.filter_executor_updated(new_executor=[new])
    async with events:
        pass
    events = proxy.filter_treasury_updated(old_treasury=[], new_treasury=[])
    async with events:
        pass

    query1, query2, query3 = backend.queries
    assert query1.event_filter.topics == (
        (topic,),
        (address_topic(old1), address_topic(old2)),
        (address_topic(new),),
    )
    assert (query1.from_block, query1.to_block) == (10, 20)
    assert query2.event_filter.topics == ((topic,), None, (address_topic(new),))
    # Empty criteria match anything
    assert query3.event_filter.topics == (
        (FAST_SETTLEMENT_V3_ABI.event.TreasuryUpdated.topic,),
    )


async def test_filter_criteria_errors(proxy: FastSettlementV3) -> None:
    with pytest.raises(TypeError, match="`IntentExecuted` has no field `sender`"):
        proxy.filter_events(IntentExecuted, sender=[Address(os.urandom(20))])
    with pytest.raises(TypeError, match="Field `received` is not indexed"):
        proxy.filter_events(IntentExecuted, received=[1])
    # An empty list of values is still checked against the field
    with pytest.raises(TypeError, match="Field `received` is not indexed"):
        proxy.filter_events(IntentExecuted, received=[])
    with pytest.raises(TypeError, match="Field `targets` is not indexed"):
        proxy.filter_events(SwapTargetsUpdated, targets=[[Address(os.urandom(20))]])


async def test_watch_options(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    send, receive = anyio.create_memory_object_stream[SwapTargetsUpdated](10)
    target = Address(os.urandom(20))

    async with proxy.watch_swap_targets_updated(send, WatchOptions(from_block=5)):
        (upstream,) = backend.subscriptions
        upstream.publish(
            make_log(contract_address, "SwapTargetsUpdated", targets=[target], allowed=[True])
        )
        record = await receive.receive()

    assert record.targets == (target,)
    assert record.allowed == (True,)
    (query,) = backend.queries
    assert (query.from_block, query.to_block) == (5, None)


def test_parse(proxy: FastSettlementV3, contract_address: Address) -> None:
    old = Address(os.urandom(20))
    new = Address(os.urandom(20))

    log_entry = make_log(contract_address, "TreasuryUpdated", oldTreasury=old, newTreasury=new)
    record = proxy.parse_treasury_updated(log_entry)
    assert (record.old_treasury, record.new_treasury) == (old, new)

    log_entry = make_log(contract_address, "ExecutorUpdated", oldExecutor=old, newExecutor=new)
    assert proxy.parse_executor_updated(log_entry).new_executor == new

    # A different event
    with pytest.raises(LogDecodingError, match="does not belong to the event `TreasuryUpdated`"):
        proxy.parse_treasury_updated(log_entry)

    # A different contract
    other_log = make_log(
        Address(os.urandom(20)), "ExecutorUpdated", oldExecutor=old, newExecutor=new
    )
    with pytest.raises(LogDecodingError, match="Log entry originates from a different contract"):
        proxy.parse_executor_updated(other_log)


async def test_watch_criteria(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    old = Address(os.urandom(20))
    new = Address(os.urandom(20))
    executors_send, executors_receive = anyio.create_memory_object_stream[ExecutorUpdated](10)
    treasuries_send, treasuries_receive = anyio.create_memory_object_stream[TreasuryUpdated](10)

    async with (
        proxy.watch_executor_updated(executors_send, new_executor=[new]),
        proxy.watch_treasury_updated(treasuries_send, old_treasury=[old]),
    ):
        executors_upstream, treasuries_upstream = backend.subscriptions
        executors_upstream.publish(
            make_log(contract_address, "ExecutorUpdated", oldExecutor=old, newExecutor=new)
        )
        treasuries_upstream.publish(
            make_log(contract_address, "TreasuryUpdated", oldTreasury=old, newTreasury=new)
        )
        executor_record = await executors_receive.receive()
        treasury_record = await treasuries_receive.receive()

    assert (executor_record.old_executor, executor_record.new_executor) == (old, new)
    assert (treasury_record.old_treasury, treasury_record.new_treasury) == (old, new)

    executors_query, treasuries_query = backend.queries
    assert executors_query.event_filter.topics == (
        (FAST_SETTLEMENT_V3_ABI.event.ExecutorUpdated.topic,),
        None,
        (address_topic(new),),
    )
    assert treasuries_query.event_filter.topics == (
        (FAST_SETTLEMENT_V3_ABI.event.TreasuryUpdated.topic,),
        (address_topic(old),),
    )
    assert backend.released == 2


async def test_filter_swap_targets_updated(
    proxy: FastSettlementV3, backend: FakeBackend, contract_address: Address
) -> None:
    targets = [Address(os.urandom(20)), Address(os.urandom(20))]
    backend.logs = [
        make_log(contract_address, "SwapTargetsUpdated", targets=targets, allowed=[True, False]),
        make_log(
            contract_address, "TreasuryUpdated", oldTreasury=targets[0], newTreasury=targets[1]
        ),
    ]

    async with proxy.filter_swap_targets_updated() as events:
        records = [record async for record in events]

    assert [(record.targets, record.allowed) for record in records] == [
        (tuple(targets), (True, False))
    ]


def test_parse_intent_executed(proxy: FastSettlementV3, contract_address: Address) -> None:
    user = Address(os.urandom(20))
    log_entry = make_log(
        contract_address,
        "IntentExecuted",
        user=user,
        inputToken=Address(os.urandom(20)),
        outputToken=Address(os.urandom(20)),
        inputAmt=100,
        userAmtOut=90,
        received=95,
        surplus=5,
    )
    record = proxy.parse_intent_executed(log_entry)
    assert record.user == user
    assert (record.input_amt, record.user_amt_out, record.received, record.surplus) == (
        100,
        90,
        95,
        5,
    )
    assert record.raw is log_entry

    # The right topic, but malformed data
    truncated = make_log(
        contract_address, "SwapTargetsUpdated", targets=[], allowed=[], data=b"\x00" * 31
    )
    with pytest.raises(LogDecodingError, match="Failed to decode the event `SwapTargetsUpdated`"):
        proxy.parse_swap_targets_updated(truncated)
