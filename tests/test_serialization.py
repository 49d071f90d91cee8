import os

import pytest

from fastsettle import Address, Amount, BlockLabel, LogEntry, LogTopic, RPCError, TxHash, TxReceipt
from fastsettle._entities import EthCallParams, FilterParams, Type2Transaction
from fastsettle._serialization import StructuringError, structure, unstructure


def test_structure_into_typed_quantity() -> None:
    assert structure(Amount, "0x123") == Amount(0x123)

    with pytest.raises(
        StructuringError, match="The value must be a 0x-prefixed hex-encoded integer"
    ):
        structure(Amount, "abc")


def test_structure_into_int() -> None:
    assert structure(int, "0x123") == 0x123

    with pytest.raises(
        StructuringError, match="The value must be a 0x-prefixed hex-encoded integer"
    ):
        structure(int, "abc")
    with pytest.raises(
        StructuringError, match="The value must be a 0x-prefixed hex-encoded integer"
    ):
        structure(int, 123)


def test_structure_into_typed_data() -> None:
    address = os.urandom(20)
    assert structure(Address, "0x" + address.hex()) == Address(address)

    with pytest.raises(StructuringError, match="The value must be a 0x-prefixed hex-encoded data"):
        structure(Address, "abc")

    # The error text is weird
    with pytest.raises(
        StructuringError, match=r"non-hexadecimal number found in fromhex\(\) arg at position 0"
    ):
        structure(Address, "0xzz")

    with pytest.raises(StructuringError, match="Address must be 20 bytes long, got 19"):
        structure(Address, "0x" + address[:-1].hex())


def test_unstructure_block() -> None:
    assert unstructure(BlockLabel.PENDING) == "pending"
    assert unstructure(255) == "0xff"


def test_log_entry_round_trip() -> None:
    log_entry = LogEntry(
        address=Address(os.urandom(20)),
        topics=(LogTopic(os.urandom(32)), LogTopic(os.urandom(32))),
        data=b"\x01\x02",
        block_number=10,
        log_index=2,
        transaction_index=1,
        transaction_hash=TxHash(os.urandom(32)),
    )
    assert structure(LogEntry, unstructure(log_entry)) == log_entry


def test_structure_log_entry_defaults() -> None:
    address = Address(os.urandom(20))
    log_entry = structure(
        LogEntry,
        {
            "address": address.checksum,
            "topics": [],
            "data": "0x",
            "blockNumber": "0x1",
            "logIndex": "0x0",
        },
    )
    assert log_entry == LogEntry(address=address, topics=(), data=b"", block_number=1, log_index=0)
    assert not log_entry.removed


def test_structure_log_entry_errors() -> None:
    json = {
        "address": Address(os.urandom(20)).checksum,
        "topics": [],
        "data": "0x",
        "logIndex": "0x0",
    }
    # Missing `blockNumber`
    with pytest.raises(StructuringError):
        structure(LogEntry, json)

    with pytest.raises(StructuringError):
        structure(LogEntry, {**json, "blockNumber": "1"})

    with pytest.raises(StructuringError):
        structure(LogEntry, 1)


def test_structure_receipt() -> None:
    tx_hash = os.urandom(32)
    block_hash = os.urandom(32)
    sender = Address(os.urandom(20))
    receipt = structure(
        TxReceipt,
        {
            "transactionHash": "0x" + tx_hash.hex(),
            "blockHash": "0x" + block_hash.hex(),
            "blockNumber": "0x5",
            "from": sender.checksum,
            "to": None,
            "gasUsed": "0x5208",
            "status": "0x0",
            "logs": [],
        },
    )
    assert receipt.transaction_hash == TxHash(tx_hash)
    assert receipt.from_ == sender
    assert receipt.to is None
    assert receipt.gas_used == 21000
    assert receipt.logs == ()
    assert not receipt.succeeded

    assert structure(None | TxReceipt, None) is None  # type: ignore[arg-type]


def test_structure_rpc_error() -> None:
    error = structure(RPCError, {"code": 3, "message": "execution reverted", "data": "0x1234"})
    assert error.code == 3
    assert error.message == "execution reverted"
    assert error.data == b"\x12\x34"

    # Some providers put the message into `data`
    error = structure(RPCError, {"code": -32000, "message": "oops", "data": "details"})
    assert error.data is None

    with pytest.raises(StructuringError, match="The error code must be an integer, got '3'"):
        structure(RPCError, {"code": "3", "message": "oops"})
    with pytest.raises(StructuringError, match="The error must be a dictionary"):
        structure(RPCError, "oops")


def test_unstructure_call_params() -> None:
    address = Address(os.urandom(20))
    sender = Address(os.urandom(20))
    params = EthCallParams(to=address, from_=sender, data=b"\x01\x02")
    assert unstructure(params) == {
        "to": address.checksum,
        "from": sender.checksum,
        "data": "0x0102",
    }


def test_unstructure_filter_params() -> None:
    address = Address(os.urandom(20))
    topic1 = LogTopic(os.urandom(32))
    topic2 = LogTopic(os.urandom(32))
    params = FilterParams(
        from_block=1,
        to_block=BlockLabel.LATEST,
        address=address,
        topics=((topic1,), None, (topic1, topic2)),
    )
    json = unstructure(params)
    assert isinstance(json, dict)
    assert json["fromBlock"] == "0x1"
    assert json["toBlock"] == "latest"
    assert json["address"] == address.checksum
    assert [None if topics is None else list(topics) for topics in json["topics"]] == [
        ["0x" + bytes(topic1).hex()],
        None,
        ["0x" + bytes(topic1).hex(), "0x" + bytes(topic2).hex()],
    ]
    assert unstructure(FilterParams()) == {}


def test_unstructure_type2_transaction() -> None:
    address = Address(os.urandom(20))
    tx = Type2Transaction(
        chain_id=1,
        value=Amount(10),
        gas=21000,
        max_fee_per_gas=Amount.gwei(2),
        max_priority_fee_per_gas=Amount.gwei(1),
        nonce=7,
        to=address,
    )
    assert unstructure(tx) == {
        "type": "0x2",
        "chainId": "0x1",
        "value": "0xa",
        "gas": "0x5208",
        "maxFeePerGas": hex(2 * 10**9),
        "maxPriorityFeePerGas": hex(10**9),
        "nonce": "0x7",
        "to": address.checksum,
    }
