"""Decoding and delivery of contract events from chain backend log subscriptions."""

import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from enum import Enum
from types import TracebackType
from typing import Generic, TypeVar

import anyio
from anyio.streams.memory import MemoryObjectSendStream

from ._backend import ChainBackend, LogQuery, LogSubscription
from ._contract_abi import LogDecodingError
from ._entities import LogEntry

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

LogDecoder = Callable[[LogEntry], RecordT]
"""Decodes a raw log entry, raising :py:class:`LogDecodingError` on mismatch."""


class IteratorState(Enum):
    """States of an :py:class:`EventIterator`."""

    ACTIVE = "active"
    """Waiting for the backend to produce logs."""

    DRAINING = "draining"
    """The backend finished normally, the buffered logs are being delivered."""

    EXHAUSTED = "exhausted"
    """All the logs were delivered."""

    FAILED = "failed"
    """A decoding or an upstream error occurred, see :py:attr:`EventIterator.error`."""


class EventIterator(Generic[RecordT]):
    """
    A cursor over the logs of one event, decoding them into records.

    Can be used as an async context manager and as an async iterator:

    .. code-block:: python

        async with proxy.filter_intent_executed(user=[user]) as events:
            async for record in events:
                ...

    Alternatively, :py:meth:`advance` can be called until it returns ``False``,
    followed by checking :py:attr:`error` and calling :py:meth:`close`.

    If the backend finishes the stream normally, the logs it has produced are still delivered.
    If it fails, the iterator fails as soon as the failure is observed,
    and the undelivered logs are discarded.
    """

    def __init__(self, backend: ChainBackend, query: LogQuery, decode: LogDecoder[RecordT]):
        self._backend = backend
        self._query = query
        self._decode = decode
        self._exit_stack = AsyncExitStack()
        self._subscription: None | LogSubscription = None
        self._closed = False
        self._state = IteratorState.ACTIVE
        self._event: None | RecordT = None
        self._error: None | Exception = None

    @property
    def state(self) -> IteratorState:
        """The current state of the iterator."""
        return self._state

    @property
    def event(self) -> None | RecordT:
        """The record decoded by the last successful :py:meth:`advance`."""
        return self._event

    @property
    def error(self) -> None | Exception:
        """The error the iteration failed with, if any."""
        return self._error

    async def _open(self) -> LogSubscription:
        if self._closed:
            raise RuntimeError("The iterator is closed")
        if self._subscription is None:
            self._subscription = await self._exit_stack.enter_async_context(
                self._backend.filter_logs(self._query)
            )
            logger.debug("Opened a log iterator for %s", self._query.address)
        return self._subscription

    async def __aenter__(self) -> "EventIterator[RecordT]":
        await self._open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    def _fail(self, error: Exception) -> bool:
        logger.debug("Log iterator for %s failed: %s", self._query.address, error)
        self._state = IteratorState.FAILED
        self._error = error
        self._event = None
        return False

    def _deliver(self, log_entry: LogEntry) -> bool:
        try:
            self._event = self._decode(log_entry)
        except LogDecodingError as exc:
            return self._fail(exc)
        return True

    async def advance(self) -> bool:
        """
        Moves to the next log, decoding it into :py:attr:`event`.

        Returns ``True`` on success, and ``False`` if there are no more logs
        or the iteration failed (in which case the error is available as :py:attr:`error`).
        Once ``False`` is returned, all the subsequent calls return ``False`` too.
        Always returns ``False`` after :py:meth:`close`.
        """
        if self._closed or self._state in (IteratorState.EXHAUSTED, IteratorState.FAILED):
            return False

        subscription = await self._open()

        if self._state == IteratorState.ACTIVE:
            if subscription.error is not None:
                return self._fail(subscription.error)

            if not subscription.finished:
                try:
                    log_entry = await subscription.receive()
                except anyio.EndOfStream:
                    # Finished while we were waiting, and there is nothing buffered.
                    if subscription.error is not None:
                        return self._fail(subscription.error)
                    self._state = IteratorState.EXHAUSTED
                    return False
                return self._deliver(log_entry)

            self._state = IteratorState.DRAINING

        try:
            log_entry = subscription.receive_nowait()
        except (anyio.WouldBlock, anyio.EndOfStream):
            self._state = IteratorState.EXHAUSTED
            self._event = None
            return False
        return self._deliver(log_entry)

    async def close(self) -> None:
        """
        Releases the backend subscription.
        Can be called several times; never raises.
        """
        if self._closed:
            return
        self._closed = True
        try:
            await self._exit_stack.aclose()
        except Exception:
            # `close()` is called from `__aexit__` and must not mask the original exception.
            logger.warning("Failed to release the log subscription", exc_info=True)
        else:
            logger.debug("Closed the log iterator for %s", self._query.address)

    def __aiter__(self) -> "EventIterator[RecordT]":
        return self

    async def __anext__(self) -> RecordT:
        if await self.advance():
            return self._event  # type: ignore[return-value]
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration


class EventSubscription(Generic[RecordT]):
    """
    A push-based subscription forwarding decoded records of one event to a sink
    for as long as the ``async with`` block is active.

    A decoding error, an upstream error, or a closed sink terminates the forwarding,
    and the error becomes available as :py:attr:`error`.
    The backend subscription is released when the context is exited.
    """

    def __init__(
        self,
        backend: ChainBackend,
        query: LogQuery,
        decode: LogDecoder[RecordT],
        sink: MemoryObjectSendStream[RecordT],
    ):
        self._backend = backend
        self._query = query
        self._decode = decode
        self._sink = sink
        self._exit_stack = AsyncExitStack()
        self._cancel_scope = anyio.CancelScope()
        self._done = anyio.Event()
        self._error: None | Exception = None
        self._entered = False

    @property
    def error(self) -> None | Exception:
        """The error the forwarding has terminated with, if any."""
        return self._error

    @property
    def done(self) -> bool:
        """``True`` if the forwarding has terminated."""
        return self._done.is_set()

    async def wait(self) -> None | Exception:
        """Waits for the forwarding to terminate and returns the error, if there was one."""
        await self._done.wait()
        return self._error

    def unsubscribe(self) -> None:
        """Stops the forwarding. Can be called several times."""
        self._cancel_scope.cancel()

    async def __aenter__(self) -> "EventSubscription[RecordT]":
        if self._entered:
            raise RuntimeError("The subscription can only be entered once")
        self._entered = True

        async with AsyncExitStack() as stack:
            subscription = await stack.enter_async_context(self._backend.watch_logs(self._query))
            task_group = await stack.enter_async_context(anyio.create_task_group())
            task_group.start_soon(self._forward, subscription)
            self._exit_stack = stack.pop_all()

        logger.debug("Subscribed to the logs of %s", self._query.address)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.unsubscribe()
        # Exits the task group (waiting for the forwarding task) before the backend subscription.
        await self._exit_stack.aclose()
        logger.debug("Unsubscribed from the logs of %s", self._query.address)

    async def _forward(self, subscription: LogSubscription) -> None:
        with self._cancel_scope:
            try:
                await self._run(subscription)
            except (
                LogDecodingError,
                anyio.ClosedResourceError,
                anyio.BrokenResourceError,
            ) as exc:
                logger.debug("Log forwarding for %s failed: %s", self._query.address, exc)
                self._error = exc
            finally:
                self._done.set()

    async def _run(self, subscription: LogSubscription) -> None:
        while True:
            if subscription.error is not None:
                self._error = subscription.error
                return

            try:
                log_entry = await subscription.receive()
            except anyio.EndOfStream:
                self._error = subscription.error
                return

            record = self._decode(log_entry)

            if not await self._deliver(subscription, record):
                self._error = subscription.error
                return

    async def _deliver(self, subscription: LogSubscription, record: RecordT) -> bool:
        """
        Sends the record to the sink unless the backend fails first.
        Returns ``True`` if the record was delivered.
        """
        delivered = False
        sink_error: None | Exception = None

        async with anyio.create_task_group() as task_group:

            async def send() -> None:
                nonlocal delivered, sink_error
                try:
                    await self._sink.send(record)
                except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
                    sink_error = exc
                else:
                    delivered = True
                task_group.cancel_scope.cancel()

            async def watch_failure() -> None:
                await subscription.wait_failed()
                task_group.cancel_scope.cancel()

            task_group.start_soon(send)
            task_group.start_soon(watch_failure)

        if sink_error is not None:
            raise sink_error
        return delivered
