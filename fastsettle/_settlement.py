"""The fixed ``IFastSettlementV3`` contract schema, argument structs and event records."""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

from ._contract_abi import ContractABI, FieldValues
from ._entities import Address, LogEntry

_INTENT_COMPONENTS = """[
    {"name": "user", "type": "address"},
    {"name": "inputToken", "type": "address"},
    {"name": "outputToken", "type": "address"},
    {"name": "inputAmt", "type": "uint256"},
    {"name": "userAmtOut", "type": "uint256"},
    {"name": "recipient", "type": "address"},
    {"name": "deadline", "type": "uint256"},
    {"name": "nonce", "type": "uint256"}
]"""

_SWAP_CALL_COMPONENTS = """[
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "data", "type": "bytes"}
]"""

_EXECUTE_OUTPUTS = """[
    {"name": "received", "type": "uint256"},
    {"name": "surplus", "type": "uint256"}
]"""

_ERROR_NAMES = [
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
    "IntentExpired",
    "InvalidETHAmount",
    "InvalidPermit2",
    "InvalidWETH",
    "UnauthorizedCaller",
    "UnauthorizedExecutor",
    "UnauthorizedSwapTarget",
]

FAST_SETTLEMENT_V3_JSON_ABI = json.loads(
    f"""[
    {{
        "type": "function",
        "name": "executeWithETH",
        "inputs": [
            {{"name": "intent", "type": "tuple", "components": {_INTENT_COMPONENTS}}},
            {{"name": "swapData", "type": "tuple", "components": {_SWAP_CALL_COMPONENTS}}}
        ],
        "outputs": {_EXECUTE_OUTPUTS},
        "stateMutability": "payable"
    }},
    {{
        "type": "function",
        "name": "executeWithPermit",
        "inputs": [
            {{"name": "intent", "type": "tuple", "components": {_INTENT_COMPONENTS}}},
            {{"name": "signature", "type": "bytes"}},
            {{"name": "swapData", "type": "tuple", "components": {_SWAP_CALL_COMPONENTS}}}
        ],
        "outputs": {_EXECUTE_OUTPUTS},
        "stateMutability": "nonpayable"
    }},
    {{
        "type": "function",
        "name": "rescueTokens",
        "inputs": [
            {{"name": "token", "type": "address"}},
            {{"name": "amount", "type": "uint256"}}
        ],
        "outputs": [],
        "stateMutability": "nonpayable"
    }},
    {{
        "type": "function",
        "name": "setExecutor",
        "inputs": [{{"name": "_newExecutor", "type": "address"}}],
        "outputs": [],
        "stateMutability": "nonpayable"
    }},
    {{
        "type": "function",
        "name": "setSwapTargets",
        "inputs": [
            {{"name": "targets", "type": "address[]"}},
            {{"name": "allowed", "type": "bool[]"}}
        ],
        "outputs": [],
        "stateMutability": "nonpayable"
    }},
    {{
        "type": "function",
        "name": "setTreasury",
        "inputs": [{{"name": "_newTreasury", "type": "address"}}],
        "outputs": [],
        "stateMutability": "nonpayable"
    }},
    {{
        "type": "event",
        "name": "ExecutorUpdated",
        "inputs": [
            {{"name": "oldExecutor", "type": "address", "indexed": true}},
            {{"name": "newExecutor", "type": "address", "indexed": true}}
        ],
        "anonymous": false
    }},
    {{
        "type": "event",
        "name": "IntentExecuted",
        "inputs": [
            {{"name": "user", "type": "address", "indexed": true}},
            {{"name": "inputToken", "type": "address", "indexed": true}},
            {{"name": "outputToken", "type": "address", "indexed": true}},
            {{"name": "inputAmt", "type": "uint256", "indexed": false}},
            {{"name": "userAmtOut", "type": "uint256", "indexed": false}},
            {{"name": "received", "type": "uint256", "indexed": false}},
            {{"name": "surplus", "type": "uint256", "indexed": false}}
        ],
        "anonymous": false
    }},
    {{
        "type": "event",
        "name": "SwapTargetsUpdated",
        "inputs": [
            {{"name": "targets", "type": "address[]", "indexed": false}},
            {{"name": "allowed", "type": "bool[]", "indexed": false}}
        ],
        "anonymous": false
    }},
    {{
        "type": "event",
        "name": "TreasuryUpdated",
        "inputs": [
            {{"name": "oldTreasury", "type": "address", "indexed": true}},
            {{"name": "newTreasury", "type": "address", "indexed": true}}
        ],
        "anonymous": false
    }},
    {{
        "type": "error",
        "name": "InsufficientOut",
        "inputs": [
            {{"name": "received", "type": "uint256"}},
            {{"name": "userAmtOut", "type": "uint256"}}
        ]
    }}
]"""
) + [{"type": "error", "name": name, "inputs": []} for name in _ERROR_NAMES]
"""The JSON ABI of the ``IFastSettlementV3`` contract."""

FAST_SETTLEMENT_V3_ABI = ContractABI.from_json(FAST_SETTLEMENT_V3_JSON_ABI)
"""The parsed ``IFastSettlementV3`` ABI, shared by all the contract proxies."""


@dataclass(frozen=True)
class Intent:
    """An off-chain signed settlement request."""

    user: Address
    input_token: Address
    output_token: Address
    input_amt: int
    user_amt_out: int
    """The minimum amount of the output token the user must receive."""
    recipient: Address
    deadline: int
    """Expiration time, in seconds since the epoch."""
    nonce: int

    def to_abi(self) -> dict[str, Any]:
        """Returns the value in the form accepted by the ``Intent`` ABI struct."""
        return {
            "user": self.user,
            "inputToken": self.input_token,
            "outputToken": self.output_token,
            "inputAmt": self.input_amt,
            "userAmtOut": self.user_amt_out,
            "recipient": self.recipient,
            "deadline": self.deadline,
            "nonce": self.nonce,
        }

    @classmethod
    def from_abi(cls, value: Mapping[str, Any]) -> "Intent":
        """Creates the object from a decoded ``Intent`` ABI struct."""
        return cls(
            user=value["user"],
            input_token=value["inputToken"],
            output_token=value["outputToken"],
            input_amt=value["inputAmt"],
            user_amt_out=value["userAmtOut"],
            recipient=value["recipient"],
            deadline=value["deadline"],
            nonce=value["nonce"],
        )


@dataclass(frozen=True)
class SwapCall:
    """A call the settlement contract performs to carry out the swap."""

    to: Address
    value: int
    """The amount of native currency (in wei) forwarded with the call."""
    data: bytes

    def to_abi(self) -> dict[str, Any]:
        """Returns the value in the form accepted by the ``SwapCall`` ABI struct."""
        return {"to": self.to, "value": self.value, "data": self.data}

    @classmethod
    def from_abi(cls, value: Mapping[str, Any]) -> "SwapCall":
        """Creates the object from a decoded ``SwapCall`` ABI struct."""
        return cls(to=value["to"], value=value["value"], data=value["data"])


EventRecordT = TypeVar("EventRecordT", bound="EventRecord")


@dataclass(frozen=True)
class EventRecord:
    """The base class for decoded contract events."""

    event_name: ClassVar[str]
    """The name of the event in the contract ABI."""

    abi_fields: ClassVar[Mapping[str, str]]
    """A mapping of the ABI field names to the attribute names."""

    raw: LogEntry = field(kw_only=True, repr=False)
    """The log entry this record was decoded from."""

    @classmethod
    def from_field_values(
        cls: type[EventRecordT], values: FieldValues, raw: LogEntry
    ) -> EventRecordT:
        kwargs = {}
        for abi_name, attr_name in cls.abi_fields.items():
            value = values[abi_name]
            # Keep the records hashable
            kwargs[attr_name] = tuple(value) if isinstance(value, list) else value
        return cls(**kwargs, raw=raw)


@dataclass(frozen=True)
class ExecutorUpdated(EventRecord):
    """The ``ExecutorUpdated`` event."""

    event_name: ClassVar[str] = "ExecutorUpdated"
    abi_fields: ClassVar[Mapping[str, str]] = {
        "oldExecutor": "old_executor",
        "newExecutor": "new_executor",
    }

    old_executor: Address
    new_executor: Address


@dataclass(frozen=True)
class IntentExecuted(EventRecord):
    """The ``IntentExecuted`` event."""

    event_name: ClassVar[str] = "IntentExecuted"
    abi_fields: ClassVar[Mapping[str, str]] = {
        "user": "user",
        "inputToken": "input_token",
        "outputToken": "output_token",
        "inputAmt": "input_amt",
        "userAmtOut": "user_amt_out",
        "received": "received",
        "surplus": "surplus",
    }

    user: Address
    input_token: Address
    output_token: Address
    input_amt: int
    user_amt_out: int
    received: int
    surplus: int


@dataclass(frozen=True)
class SwapTargetsUpdated(EventRecord):
    """The ``SwapTargetsUpdated`` event."""

    event_name: ClassVar[str] = "SwapTargetsUpdated"
    abi_fields: ClassVar[Mapping[str, str]] = {"targets": "targets", "allowed": "allowed"}

    targets: tuple[Address, ...]
    allowed: tuple[bool, ...]


@dataclass(frozen=True)
class TreasuryUpdated(EventRecord):
    """The ``TreasuryUpdated`` event."""

    event_name: ClassVar[str] = "TreasuryUpdated"
    abi_fields: ClassVar[Mapping[str, str]] = {
        "oldTreasury": "old_treasury",
        "newTreasury": "new_treasury",
    }

    old_treasury: Address
    new_treasury: Address
