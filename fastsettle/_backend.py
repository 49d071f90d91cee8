import math
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ._contract import BoundEventFilter, BoundMethodCall
from ._entities import Address, Amount, Block, BlockLabel, LogEntry, TxHash
from ._signer import Signer


@dataclass(frozen=True)
class CallOptions:
    """Options of a read-only contract call."""

    sender: None | Address = None
    """
    The address the call is made from.
    Affects the result if the method uses ``msg.sender`` internally.
    """

    block: Block = BlockLabel.LATEST
    """The block to execute the call at."""

    value: None | Amount = None
    """
    The amount of native currency attached to the call.
    Only needed to simulate payable methods.
    """


@dataclass(frozen=True)
class TransactOptions:
    """
    Options of a state-changing transaction.
    The values left as ``None`` are filled in by the backend.
    """

    signer: None | Signer = None
    """The signer of the transaction. Required for the transaction to be submitted."""

    value: Amount = field(default_factory=lambda: Amount(0))
    """The amount of native currency attached to the transaction."""

    gas: None | int = None
    """The gas limit. Estimated if not given."""

    max_fee_per_gas: None | Amount = None
    """The fee cap. Set to the current gas price if not given."""

    max_priority_fee_per_gas: None | Amount = None
    """The tip cap. Derived from the backend's config and the gas price if not given."""

    nonce: None | int = None
    """The sender's nonce. Taken from the pending state if not given."""


@dataclass(frozen=True)
class FilterOptions:
    """The block range of a historical log query."""

    from_block: Block = 0
    """The first block to include."""

    to_block: Block = BlockLabel.LATEST
    """The last block to include."""


@dataclass(frozen=True)
class WatchOptions:
    """The starting point of a live log subscription."""

    from_block: None | Block = None
    """The first block to watch. If ``None``, only new logs are delivered."""


@dataclass(frozen=True)
class LogQuery:
    """A request for the logs of a single event of a single contract."""

    event_filter: BoundEventFilter
    """The contract address and the topics to select the logs by."""

    from_block: None | Block = None
    """The first block to include. ``None`` means the node's default."""

    to_block: None | Block = None
    """The last block to include. ``None`` means the node's default."""

    @property
    def address(self) -> Address:
        return self.event_filter.contract_address


class LogSubscription:
    """
    An ordered live stream of log entries produced by a chain backend,
    which eventually finishes either normally or with an error.

    The producer side (:py:meth:`publish` and :py:meth:`finish`) is used by the backend,
    the rest is used by the consumer.
    """

    def __init__(self) -> None:
        send: MemoryObjectSendStream[LogEntry]
        receive: MemoryObjectReceiveStream[LogEntry]
        send, receive = anyio.create_memory_object_stream(math.inf)
        self._send = send
        self._receive = receive
        self._finished = anyio.Event()
        self._failed = anyio.Event()
        self._error: None | Exception = None

    def publish(self, log_entry: LogEntry) -> None:
        """Adds a log entry to the stream."""
        if self._finished.is_set():
            raise RuntimeError("Cannot publish to a finished log subscription")
        self._send.send_nowait(log_entry)

    def finish(self, error: None | Exception = None) -> None:
        """
        Marks the stream as finished, normally if ``error`` is ``None``.
        Subsequent calls have no effect.
        """
        if self._finished.is_set():
            return
        self._error = error
        self._send.close()
        self._finished.set()
        if error is not None:
            self._failed.set()

    @property
    def finished(self) -> bool:
        """``True`` if the producer has finished the stream."""
        return self._finished.is_set()

    @property
    def error(self) -> None | Exception:
        """The error the stream was finished with, if any."""
        return self._error

    async def wait_finished(self) -> None:
        """Waits until the stream is finished (normally or with an error)."""
        await self._finished.wait()

    async def wait_failed(self) -> None:
        """Waits until the stream is finished with an error. Never returns otherwise."""
        await self._failed.wait()

    async def receive(self) -> LogEntry:
        """
        Waits for the next log entry.
        Raises ``anyio.EndOfStream`` if the stream is finished and all the entries were received.
        """
        return await self._receive.receive()

    def receive_nowait(self) -> LogEntry:
        """
        Returns the next buffered log entry.
        Raises ``anyio.WouldBlock`` if there is none yet,
        or ``anyio.EndOfStream`` if there will be none.
        """
        return self._receive.receive_nowait()


class ChainBackend(ABC):
    """
    The chain collaborator used by the contract proxy.

    Implementations propagate transport and chain-rejection errors unchanged,
    and never retry.
    """

    @abstractmethod
    async def call(self, call: BoundMethodCall, options: CallOptions) -> bytes:
        """Executes a read-only call and returns the packed output."""

    @abstractmethod
    async def transact(self, call: BoundMethodCall, options: TransactOptions) -> TxHash:
        """Submits a transaction invoking the call and returns its hash."""

    @abstractmethod
    async def transfer(self, address: Address, options: TransactOptions) -> TxHash:
        """Submits a plain value transfer to ``address`` and returns its hash."""

    @abstractmethod
    @asynccontextmanager
    async def filter_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        """
        Opens a subscription to the historical logs selected by the query.
        The subscription is finished after the last log.
        The subscription is released when the context is exited.
        """
        # mypy does not work with abstract generators correctly.
        # See https://github.com/python/mypy/issues/5070
        yield  # type: ignore[misc]

    @abstractmethod
    @asynccontextmanager
    async def watch_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        """
        Opens a subscription to the new logs selected by the query.
        The subscription stays open until an error occurs or the context is exited.
        """
        yield  # type: ignore[misc]
