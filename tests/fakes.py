"""In-memory stand-ins for a chain node used by the tests."""

import json
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastsettle import (
    FAST_SETTLEMENT_V3_ABI,
    Address,
    BoundMethodCall,
    CallOptions,
    ChainBackend,
    Intent,
    LogEntry,
    LogQuery,
    LogSubscription,
    LogTopic,
    TransactOptions,
    TxHash,
)
from fastsettle._abi_types import encode_args
from fastsettle._provider import RPC_JSON, Provider, ProviderSession


def make_log(
    address: Address,
    event_name: str,
    *,
    block_number: int = 1,
    log_index: int = 0,
    data: None | bytes = None,
    **fields: Any,
) -> LogEntry:
    """
    Creates a log entry the contract would emit for the event with the given field values.
    If ``data`` is given, it replaces the encoded non-indexed fields.
    """
    event = FAST_SETTLEMENT_V3_ABI.event[event_name]
    topics = [event.topic]
    nonindexed = []
    for name, tp, indexed in zip(
        event.fields.names, event.fields.types, event.fields.indexed, strict=True
    ):
        if indexed:
            topics.append(LogTopic(tp.encode_to_topic(fields[name])))
        else:
            nonindexed.append((tp, fields[name]))

    return LogEntry(
        address=address,
        topics=tuple(topics),
        data=encode_args(*nonindexed) if data is None else data,
        block_number=block_number,
        log_index=log_index,
    )


def make_intent(user: None | Address = None) -> Intent:
    return Intent(
        user=user or Address(os.urandom(20)),
        input_token=Address(os.urandom(20)),
        output_token=Address(os.urandom(20)),
        input_amt=1000,
        user_amt_out=990,
        recipient=Address(os.urandom(20)),
        deadline=2_000_000_000,
        nonce=1,
    )


class FakeBackend(ChainBackend):
    """
    Records the dispatched calls and serves logs from memory.

    Historical queries return the matching entries of ``logs``
    and finish with ``filter_error`` (normally if it is ``None``).
    If ``keep_open`` is set, historical subscriptions are left unfinished
    and, like the live ones, are appended to ``subscriptions`` for the test to drive.
    """

    def __init__(self) -> None:
        self.call_result = b""
        self.call_error: None | Exception = None
        self.calls: list[tuple[BoundMethodCall, CallOptions]] = []
        self.transactions: list[tuple[BoundMethodCall, TransactOptions]] = []
        self.transfers: list[tuple[Address, TransactOptions]] = []

        self.logs: list[LogEntry] = []
        self.filter_error: None | Exception = None
        self.keep_open = False
        self.release_error: None | Exception = None

        self.queries: list[LogQuery] = []
        self.subscriptions: list[LogSubscription] = []
        self.opened = 0
        self.released = 0

    async def call(self, call: BoundMethodCall, options: CallOptions) -> bytes:
        self.calls.append((call, options))
        if self.call_error is not None:
            raise self.call_error
        return self.call_result

    async def transact(self, call: BoundMethodCall, options: TransactOptions) -> TxHash:
        self.transactions.append((call, options))
        return TxHash(len(self.transactions).to_bytes(32, "big"))

    async def transfer(self, address: Address, options: TransactOptions) -> TxHash:
        self.transfers.append((address, options))
        return TxHash(b"\xff" * 32)

    @asynccontextmanager
    async def _open(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        self.queries.append(query)
        self.opened += 1
        subscription = LogSubscription()
        try:
            yield subscription
        finally:
            subscription.finish()
            self.released += 1
            if self.release_error is not None:
                raise self.release_error

    @asynccontextmanager
    async def filter_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        async with self._open(query) as subscription:
            for log_entry in self.logs:
                if query.event_filter.matches(log_entry):
                    subscription.publish(log_entry)
            if self.keep_open:
                self.subscriptions.append(subscription)
            else:
                subscription.finish(self.filter_error)
            yield subscription

    @asynccontextmanager
    async def watch_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        async with self._open(query) as subscription:
            self.subscriptions.append(subscription)
            yield subscription


class ScriptedProviderSession(ProviderSession):
    def __init__(self, provider: "ScriptedProvider"):
        self._provider = provider

    async def rpc(self, method: str, *args: RPC_JSON) -> RPC_JSON:
        # Pass the arguments through JSON, the way a node would see them
        args = tuple(json.loads(json.dumps(arg)) for arg in args)
        self._provider.requests.append((method, args))
        handler = self._provider.handlers[method]
        return handler(*args)


class ScriptedProvider(Provider):
    """
    A provider answering each RPC method with the registered handler.
    A handler receives the JSON arguments and returns the JSON result or raises.
    """

    def __init__(self, handlers: None | dict[str, Callable[..., RPC_JSON]] = None):
        self.handlers: dict[str, Callable[..., RPC_JSON]] = dict(handlers or {})
        self.requests: list[tuple[str, tuple[RPC_JSON, ...]]] = []

    def methods(self) -> list[str]:
        return [method for method, _args in self.requests]

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ScriptedProviderSession]:
        yield ScriptedProviderSession(self)
