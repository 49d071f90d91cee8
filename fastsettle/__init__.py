"""Async client for the IFastSettlementV3 settlement contract."""

from . import abi
from ._abi_types import ABIDecodingError, ABISchemaError
from ._backend import (
    CallOptions,
    ChainBackend,
    FilterOptions,
    LogQuery,
    LogSubscription,
    TransactOptions,
    WatchOptions,
)
from ._client import (
    ContractError,
    ContractLegacyError,
    ContractPanic,
    ContractPanicReason,
    RPCBackend,
    TransactionFailed,
)
from ._client_rpc import BadResponseFormat
from ._config import BackendConfig
from ._contract import (
    BoundEvent,
    BoundEventFilter,
    BoundMethod,
    BoundMethodCall,
    DeployedContract,
)
from ._contract_abi import (
    ContractABI,
    Either,
    Error,
    Event,
    EventFilter,
    FieldValues,
    LogDecodingError,
    Method,
    MethodCall,
    Mutability,
    UnknownError,
)
from ._entities import (
    Address,
    Amount,
    Block,
    BlockHash,
    BlockLabel,
    LogEntry,
    LogTopic,
    RPCError,
    RPCErrorCode,
    TxHash,
    TxReceipt,
)
from ._events import EventIterator, EventSubscription, IteratorState
from ._http_provider import HTTPError, HTTPProvider
from ._provider import InvalidResponse, ProtocolError, Provider, ProviderError, Unreachable
from ._proxy import FastSettlementV3
from ._settlement import (
    FAST_SETTLEMENT_V3_ABI,
    FAST_SETTLEMENT_V3_JSON_ABI,
    EventRecord,
    ExecutorUpdated,
    Intent,
    IntentExecuted,
    SwapCall,
    SwapTargetsUpdated,
    TreasuryUpdated,
)
from ._signer import AccountSigner, Signer

__all__ = [
    "FAST_SETTLEMENT_V3_ABI",
    "FAST_SETTLEMENT_V3_JSON_ABI",
    "ABIDecodingError",
    "ABISchemaError",
    "AccountSigner",
    "Address",
    "Amount",
    "BackendConfig",
    "BadResponseFormat",
    "Block",
    "BlockHash",
    "BlockLabel",
    "BoundEvent",
    "BoundEventFilter",
    "BoundMethod",
    "BoundMethodCall",
    "CallOptions",
    "ChainBackend",
    "ContractABI",
    "ContractError",
    "ContractLegacyError",
    "ContractPanic",
    "ContractPanicReason",
    "DeployedContract",
    "Either",
    "Error",
    "Event",
    "EventFilter",
    "EventIterator",
    "EventRecord",
    "EventSubscription",
    "ExecutorUpdated",
    "FastSettlementV3",
    "FieldValues",
    "FilterOptions",
    "HTTPError",
    "HTTPProvider",
    "Intent",
    "IntentExecuted",
    "InvalidResponse",
    "IteratorState",
    "LogDecodingError",
    "LogEntry",
    "LogQuery",
    "LogSubscription",
    "LogTopic",
    "Method",
    "MethodCall",
    "Mutability",
    "ProtocolError",
    "Provider",
    "ProviderError",
    "RPCBackend",
    "RPCError",
    "RPCErrorCode",
    "Signer",
    "SwapCall",
    "SwapTargetsUpdated",
    "TransactOptions",
    "TransactionFailed",
    "TreasuryUpdated",
    "TxHash",
    "TxReceipt",
    "UnknownError",
    "Unreachable",
    "WatchOptions",
    "abi",
]
