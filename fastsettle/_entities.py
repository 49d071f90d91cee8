from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, TypeVar, cast

from eth_utils import to_canonical_address, to_checksum_address

TypedDataLike = TypeVar("TypedDataLike", bound="TypedData")


TypedQuantityLike = TypeVar("TypedQuantityLike", bound="TypedQuantity")


class TypedData(ABC):
    """A fixed-length bytestring with a distinct type."""

    def __init__(self, value: bytes):
        if not isinstance(value, bytes):
            raise TypeError(
                f"{self.__class__.__name__} must be a bytestring, got {type(value).__name__}"
            )
        if len(value) != self._length():
            raise ValueError(
                f"{self.__class__.__name__} must be {self._length()} bytes long, got {len(value)}"
            )
        self._value = value

    @abstractmethod
    def _length(self) -> int:
        """Returns the length of this type's values representation in bytes."""

    def __bytes__(self) -> bytes:
        return self._value

    def __hash__(self) -> int:
        return hash((type(self), self._value))

    def _check_type(self: TypedDataLike, other: Any) -> TypedDataLike:
        if type(self) is not type(other):
            raise TypeError(f"Incompatible types: {type(self).__name__} and {type(other).__name__}")
        return cast("TypedDataLike", other)

    def __eq__(self, other: object) -> bool:
        return self._value == self._check_type(other)._value

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(bytes.fromhex("{self._value.hex()}"))'


class TypedQuantity:
    """A non-negative integer with a distinct type."""

    def __init__(self, value: int):
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(
                f"{self.__class__.__name__} must be an integer, got {type(value).__name__}"
            )
        if value < 0:
            raise ValueError(f"{self.__class__.__name__} must be non-negative, got {value}")
        self._value = value

    def __hash__(self) -> int:
        return hash((type(self), self._value))

    def __int__(self) -> int:
        return self._value

    def _check_type(self: TypedQuantityLike, other: Any) -> TypedQuantityLike:
        if type(self) is not type(other):
            raise TypeError(f"Incompatible types: {type(self).__name__} and {type(other).__name__}")
        return cast("TypedQuantityLike", other)

    def __eq__(self, other: object) -> bool:
        return self._value == self._check_type(other)._value

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._value})"


class Amount(TypedQuantity):
    """
    Represents a sum in the chain's native currency, stored in wei.

    Arithmetic and comparison methods perform strict type checking.
    """

    @classmethod
    def wei(cls, value: int) -> "Amount":
        """Creates a sum from the amount in wei (``10^(-18)`` of the main unit)."""
        return cls(value)

    @classmethod
    def gwei(cls, value: float) -> "Amount":
        """Creates a sum from the amount in gwei (``10^(-9)`` of the main unit)."""
        return cls(int(10**9 * value))

    @classmethod
    def ether(cls, value: float) -> "Amount":
        """Creates a sum from the amount in the main currency unit."""
        return cls(int(10**18 * value))

    def as_wei(self) -> int:
        """Returns the amount in wei."""
        return self._value

    def as_gwei(self) -> float:
        """Returns the amount in gwei."""
        return self._value / 10**9

    def as_ether(self) -> float:
        """Returns the amount in the main currency unit."""
        return self._value / 10**18

    def __add__(self, other: Any) -> "Amount":
        return self.wei(self._value + self._check_type(other)._value)

    def __sub__(self, other: Any) -> "Amount":
        return self.wei(self._value - self._check_type(other)._value)

    def __mul__(self, other: int) -> "Amount":
        if not isinstance(other, int):
            raise TypeError(f"Expected an integer, got {type(other).__name__}")
        return self.wei(self._value * other)

    def __gt__(self, other: Any) -> bool:
        return self._value > self._check_type(other)._value

    def __ge__(self, other: Any) -> bool:
        return self._value >= self._check_type(other)._value

    def __lt__(self, other: Any) -> bool:
        return self._value < self._check_type(other)._value

    def __le__(self, other: Any) -> bool:
        return self._value <= self._check_type(other)._value


class Address(TypedData):
    """Represents an Ethereum address."""

    def _length(self) -> int:
        return 20

    @classmethod
    def from_hex(cls, address_str: str) -> "Address":
        """
        Creates the address from a hex representation
        (with or without the ``0x`` prefix, checksummed or not).
        """
        return cls(to_canonical_address(address_str))

    @cached_property
    def checksum(self) -> str:
        """Returns the checksummed hex representation of the address."""
        return to_checksum_address(self._value)

    def __str__(self) -> str:
        return self.checksum

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}.from_hex({self.checksum})"


class BlockLabel(Enum):
    """Block aliases supported by Ethereum RPC."""

    LATEST = "latest"
    """The latest confirmed block"""

    EARLIEST = "earliest"
    """The earliest block"""

    PENDING = "pending"
    """Currently pending block"""

    SAFE = "safe"
    """The latest safe head block"""

    FINALIZED = "finalized"
    """The latest finalized block"""


Block = int | BlockLabel
"""A block number or a block label."""


class LogTopic(TypedData):
    """A log topic for log filtering."""

    def _length(self) -> int:
        return 32


class BlockHash(TypedData):
    """A wrapper for the block hash."""

    def _length(self) -> int:
        return 32


class TxHash(TypedData):
    """A wrapper for the transaction hash."""

    def _length(self) -> int:
        return 32


@dataclass(frozen=True)
class LogEntry:
    """Log entry metadata."""

    address: Address
    """The contract address from which this log originated."""

    topics: tuple[LogTopic, ...]
    """
    Values of indexed event fields.
    For a named event, the first topic is the event's selector.
    """

    data: bytes
    """ABI-packed non-indexed arguments of the event."""

    block_number: int
    """The block number where this log was."""

    log_index: int
    """Log's position in the block."""

    transaction_index: int = 0
    """Transaction's position in the block."""

    transaction_hash: None | TxHash = None
    """Hash of the transactions this log was created from."""

    block_hash: None | BlockHash = None
    """Hash of the block where this log was in."""

    removed: bool = False
    """``True`` if log was removed due to a chain reorganization."""


@dataclass(frozen=True)
class TxReceipt:
    """Transaction receipt."""

    transaction_hash: TxHash
    """Hash of the transaction."""

    block_hash: BlockHash
    """Hash of the block including this transaction."""

    block_number: int
    """Block number including this transaction."""

    from_: Address
    """Address of the sender."""

    to: None | Address
    """Address of the receiver. ``None`` for contract creation transactions."""

    gas_used: int
    """The amount of gas used by the transaction."""

    status: int
    """1 if the transaction was successful, 0 otherwise."""

    logs: tuple[LogEntry, ...] = field(default=())
    """Log objects generated by this transaction."""

    @property
    def succeeded(self) -> bool:
        """``True`` if the transaction succeeded."""
        return self.status == 1


class RPCErrorCode(Enum):
    """Known RPC error codes returned by providers."""

    # Our placeholder value, not expected in a remote server response
    UNKNOWN_REASON = 0
    """An error code whose description is not present in this enum."""

    SERVER_ERROR = -32000
    """Reserved for implementation-defined server-errors. See the message for details."""

    INVALID_REQUEST = -32600
    """The JSON sent is not a valid Request object."""

    METHOD_NOT_FOUND = -32601
    """The method does not exist / is not available."""

    INVALID_PARAMETER = -32602
    """Invalid method parameter(s)."""

    EXECUTION_ERROR = 3
    """Contract transaction failed during execution. See the data for details."""

    @classmethod
    def from_int(cls, val: int) -> "RPCErrorCode":
        try:
            return cls(val)
        except ValueError:
            return cls.UNKNOWN_REASON


@dataclass
class RPCError(Exception):
    """A call execution error returned as a proper RPC response."""

    # An integer and not `RPCErrorCode`, since the codes may differ between providers.
    code: int
    message: str
    data: None | bytes = None

    @property
    def parsed_code(self) -> RPCErrorCode:
        """The error code, if it is one of the known ones."""
        return RPCErrorCode.from_int(self.code)

    def __str__(self) -> str:
        data = f" (data: 0x{self.data.hex()})" if self.data else ""
        return f"RPC error {self.code}: {self.message}{data}"


@dataclass
class Type2Transaction:
    """An EIP-1559 transaction."""

    chain_id: int
    value: Amount
    gas: int
    max_fee_per_gas: Amount
    max_priority_fee_per_gas: Amount
    nonce: int
    to: None | Address = None
    data: None | bytes = None


@dataclass
class EthCallParams:
    """Transaction fields for ``eth_call``."""

    to: Address
    from_: None | Address = None
    value: None | Amount = None
    data: None | bytes = None


@dataclass
class EstimateGasParams:
    """Transaction fields for ``eth_estimateGas``."""

    from_: Address
    to: None | Address = None
    value: None | Amount = None
    data: None | bytes = None


@dataclass
class FilterParams:
    """Filter parameters for ``eth_getLogs`` or ``eth_newFilter``."""

    from_block: None | Block = None
    to_block: None | Block = None
    address: None | Address = None
    topics: None | tuple[None | tuple[LogTopic, ...], ...] = None
