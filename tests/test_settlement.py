import os

import pytest
from eth_utils import keccak
from fakes import make_log

from fastsettle import (
    FAST_SETTLEMENT_V3_ABI,
    Address,
    ExecutorUpdated,
    Intent,
    IntentExecuted,
    LogTopic,
    SwapCall,
    SwapTargetsUpdated,
    TreasuryUpdated,
)
from fastsettle._abi_types import decode_args, encode_args


def make_intent() -> Intent:
    return Intent(
        user=Address(os.urandom(20)),
        input_token=Address(os.urandom(20)),
        output_token=Address(os.urandom(20)),
        input_amt=10**18,
        user_amt_out=2 * 10**18,
        recipient=Address(os.urandom(20)),
        deadline=1_700_000_000,
        nonce=5,
    )


@pytest.mark.parametrize(
    ("name", "selector"),
    [
        ("executeWithETH", "1fb7a307"),
        ("executeWithPermit", "02c52a55"),
        ("rescueTokens", "57376198"),
        ("setExecutor", "1c3c0ea8"),
        ("setSwapTargets", "57d6924c"),
        ("setTreasury", "f0f44260"),
    ],
)
def test_method_selectors(name: str, selector: str) -> None:
    assert FAST_SETTLEMENT_V3_ABI.method[name].selector == bytes.fromhex(selector)


@pytest.mark.parametrize(
    ("name", "topic"),
    [
        ("ExecutorUpdated", "0ef3c7eb9dbcf33ddf032f4cce366a07eda85eed03e3172e4a90c4cc16d57886"),
        ("IntentExecuted", "1ad6a4af59e844de3a921ec3dba60cb46f0b9051c9a106258624709dff629a87"),
        ("SwapTargetsUpdated", "e18e0ae71e84871d203445f1d9d5c51bd93bb2e362ee0e455940a88475dc13bc"),
        ("TreasuryUpdated", "4ab5be82436d353e61ca18726e984e561f5c1cc7c6d38b29d2553c790434705a"),
    ],
)
def test_event_topics(name: str, topic: str) -> None:
    assert FAST_SETTLEMENT_V3_ABI.event[name].topic == LogTopic(bytes.fromhex(topic))


def test_schema() -> None:
    cabi = FAST_SETTLEMENT_V3_ABI
    assert cabi.method.executeWithETH.payable
    assert not cabi.method.executeWithPermit.payable
    assert all(method.mutating for method in cabi.method)
    assert {error.name for error in cabi.error} == {
        "ArrayLengthMismatch",
        "BadCallTarget",
        "BadExecutor",
        "BadInputAmt",
        "BadInputToken",
        "BadNonce",
        "BadOwner",
        "BadRecipient",
        "BadTreasury",
        "BadUserAmtOut",
        "ExpectedETHInput",
        "InsufficientOut",
        "IntentExpired",
        "InvalidETHAmount",
        "InvalidPermit2",
        "InvalidWETH",
        "UnauthorizedCaller",
        "UnauthorizedExecutor",
        "UnauthorizedSwapTarget",
    }
    insufficient_out = cabi.error.InsufficientOut
    assert insufficient_out.fields.names == ("received", "userAmtOut")
    assert insufficient_out.selector == keccak(b"InsufficientOut(uint256,uint256)")[:4]
    assert [event.fields.indexed for event in cabi.event] == [
        (True, True),
        (True, True, True, False, False, False, False),
        (False, False),
        (True, True),
    ]


def test_execute_arguments_round_trip() -> None:
    method = FAST_SETTLEMENT_V3_ABI.method.executeWithPermit
    intent = make_intent()
    swap_call = SwapCall(to=Address(os.urandom(20)), value=3, data=b"\x12\x34")
    signature = os.urandom(65)

    call = method(intent.to_abi(), signature, swap_call.to_abi())
    assert call.data_bytes[:4] == method.selector

    decoded_intent, decoded_signature, decoded_swap_call = decode_args(
        method.inputs.types, call.data_bytes[4:]
    )
    assert Intent.from_abi(decoded_intent) == intent
    assert decoded_signature == signature
    assert SwapCall.from_abi(decoded_swap_call) == swap_call


def test_execute_outputs() -> None:
    method = FAST_SETTLEMENT_V3_ABI.method.executeWithETH
    received, surplus = 123, 4
    output = encode_args((method.outputs.types[0], received), (method.outputs.types[1], surplus))
    result = method.decode_output(output)
    assert (result.received, result.surplus) == (received, surplus)


def test_argument_errors() -> None:
    method = FAST_SETTLEMENT_V3_ABI.method.rescueTokens
    token = Address(os.urandom(20))
    with pytest.raises(ValueError, match="must correspond to a non-negative integer"):
        method(token, -1)
    with pytest.raises(TypeError, match="must correspond to an `Address`-type value"):
        method(bytes(token), 1)

    intent = make_intent().to_abi()
    del intent["nonce"]
    swap_call = SwapCall(to=token, value=0, data=b"").to_abi()
    with pytest.raises(ValueError, match="Expected fields"):
        FAST_SETTLEMENT_V3_ABI.method.executeWithETH(intent, swap_call)


def test_records_from_field_values() -> None:
    contract = Address(os.urandom(20))
    old = Address(os.urandom(20))
    new = Address(os.urandom(20))

    log_entry = make_log(contract, "ExecutorUpdated", oldExecutor=old, newExecutor=new)
    values = FAST_SETTLEMENT_V3_ABI.event.ExecutorUpdated.decode_log_entry(log_entry)
    record = ExecutorUpdated.from_field_values(values, log_entry)
    assert record == ExecutorUpdated(old_executor=old, new_executor=new, raw=log_entry)
    assert record.raw is log_entry

    log_entry = make_log(contract, "TreasuryUpdated", oldTreasury=old, newTreasury=new)
    values = FAST_SETTLEMENT_V3_ABI.event.TreasuryUpdated.decode_log_entry(log_entry)
    assert TreasuryUpdated.from_field_values(values, log_entry).new_treasury == new

    log_entry = make_log(contract, "SwapTargetsUpdated", targets=[old, new], allowed=[True, False])
    values = FAST_SETTLEMENT_V3_ABI.event.SwapTargetsUpdated.decode_log_entry(log_entry)
    record = SwapTargetsUpdated.from_field_values(values, log_entry)
    assert record.targets == (old, new)
    assert record.allowed == (True, False)
    # Records stay hashable even with array fields
    assert hash(record) == hash(SwapTargetsUpdated.from_field_values(values, log_entry))

    user = Address(os.urandom(20))
    log_entry = make_log(
        contract,
        "IntentExecuted",
        user=user,
        inputToken=old,
        outputToken=new,
        inputAmt=1,
        userAmtOut=2,
        received=3,
        surplus=1,
    )
    values = FAST_SETTLEMENT_V3_ABI.event.IntentExecuted.decode_log_entry(log_entry)
    record = IntentExecuted.from_field_values(values, log_entry)
    assert (record.user, record.input_token, record.output_token) == (user, old, new)
    assert (record.input_amt, record.user_amt_out, record.received, record.surplus) == (1, 2, 3, 1)
