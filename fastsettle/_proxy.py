import logging
from collections.abc import Iterable
from functools import partial
from typing import Any, TypeVar

from anyio.streams.memory import MemoryObjectSendStream

from ._backend import (
    CallOptions,
    ChainBackend,
    FilterOptions,
    LogQuery,
    TransactOptions,
    WatchOptions,
)
from ._contract import BoundEventFilter, DeployedContract
from ._entities import Address, LogEntry, TxHash
from ._events import EventIterator, EventSubscription
from ._settlement import (
    FAST_SETTLEMENT_V3_ABI,
    EventRecord,
    ExecutorUpdated,
    Intent,
    IntentExecuted,
    SwapCall,
    SwapTargetsUpdated,
    TreasuryUpdated,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=EventRecord)


def _decode_record(
    record_cls: type[RecordT], event_filter: BoundEventFilter, log_entry: LogEntry
) -> RecordT:
    return record_cls.from_field_values(event_filter.decode_log_entry(log_entry), log_entry)


class FastSettlementV3:
    """
    A proxy for an ``IFastSettlementV3`` contract deployed at ``address``.

    Read-only calls and transactions are dispatched to ``backend``
    with ``call_options`` and ``transact_options`` used when no options are given explicitly.
    """

    address: Address
    """The address of the contract."""

    backend: ChainBackend
    """The backend the calls and the log queries are dispatched to."""

    contract: DeployedContract
    """The contract ABI bound to the address."""

    call_options: CallOptions
    """The default options of read-only calls."""

    transact_options: TransactOptions
    """The default options of transactions."""

    def __init__(
        self,
        address: Address,
        backend: ChainBackend,
        *,
        call_options: None | CallOptions = None,
        transact_options: None | TransactOptions = None,
    ):
        self.address = address
        self.backend = backend
        self.contract = DeployedContract(FAST_SETTLEMENT_V3_ABI, address)
        self.call_options = call_options or CallOptions()
        self.transact_options = transact_options or TransactOptions()

    def with_options(
        self,
        *,
        call_options: None | CallOptions = None,
        transact_options: None | TransactOptions = None,
    ) -> "FastSettlementV3":
        """
        Returns a proxy for the same contract with the given default options.
        The options that are not given are taken from this proxy.
        """
        return FastSettlementV3(
            self.address,
            self.backend,
            call_options=call_options or self.call_options,
            transact_options=transact_options or self.transact_options,
        )

    async def call(self, method_name: str, *args: Any, options: None | CallOptions = None) -> Any:
        """
        Calls the contract method ``method_name`` without creating a transaction
        and returns the decoded output (see :py:meth:`Method.decode_output`).
        """
        bound_call = self.contract.method[method_name](*args)
        output = await self.backend.call(bound_call, options or self.call_options)
        return bound_call.decode_output(output)

    async def transact(
        self, method_name: str, *args: Any, options: None | TransactOptions = None
    ) -> TxHash:
        """Submits a transaction invoking the contract method ``method_name``."""
        bound_call = self.contract.method[method_name](*args)
        tx_hash = await self.backend.transact(bound_call, options or self.transact_options)
        logger.debug("%s: submitted %s", method_name, tx_hash)
        return tx_hash

    async def transfer(self, options: None | TransactOptions = None) -> TxHash:
        """Sends the native currency (``options.value``) to the contract."""
        return await self.backend.transfer(self.address, options or self.transact_options)

    async def execute_with_eth(
        self, intent: Intent, swap_data: SwapCall, options: None | TransactOptions = None
    ) -> TxHash:
        """Settles an intent paid for with the native currency attached to the transaction."""
        return await self.transact(
            "executeWithETH", intent.to_abi(), swap_data.to_abi(), options=options
        )

    async def execute_with_permit(
        self,
        intent: Intent,
        signature: bytes,
        swap_data: SwapCall,
        options: None | TransactOptions = None,
    ) -> TxHash:
        """Settles an intent whose input tokens are pulled with a signed permit."""
        return await self.transact(
            "executeWithPermit", intent.to_abi(), signature, swap_data.to_abi(), options=options
        )

    async def simulate_execute_with_eth(
        self, intent: Intent, swap_data: SwapCall, options: None | CallOptions = None
    ) -> tuple[int, int]:
        """
        Runs ``executeWithETH`` as a read-only call
        and returns the ``(received, surplus)`` it would produce.
        """
        result = await self.call(
            "executeWithETH", intent.to_abi(), swap_data.to_abi(), options=options
        )
        return result.received, result.surplus

    async def simulate_execute_with_permit(
        self,
        intent: Intent,
        signature: bytes,
        swap_data: SwapCall,
        options: None | CallOptions = None,
    ) -> tuple[int, int]:
        """
        Runs ``executeWithPermit`` as a read-only call
        and returns the ``(received, surplus)`` it would produce.
        """
        result = await self.call(
            "executeWithPermit", intent.to_abi(), signature, swap_data.to_abi(), options=options
        )
        return result.received, result.surplus

    async def rescue_tokens(
        self, token: Address, amount: int, options: None | TransactOptions = None
    ) -> TxHash:
        return await self.transact("rescueTokens", token, amount, options=options)

    async def set_executor(
        self, new_executor: Address, options: None | TransactOptions = None
    ) -> TxHash:
        return await self.transact("setExecutor", new_executor, options=options)

    async def set_swap_targets(
        self,
        targets: Iterable[Address],
        allowed: Iterable[bool],
        options: None | TransactOptions = None,
    ) -> TxHash:
        """
        Allows or disallows the given swap targets.
        ``targets`` and ``allowed`` are expected to be of the same length.
        """
        return await self.transact(
            "setSwapTargets", list(targets), list(allowed), options=options
        )

    async def set_treasury(
        self, new_treasury: Address, options: None | TransactOptions = None
    ) -> TxHash:
        return await self.transact("setTreasury", new_treasury, options=options)

    def _event_filter(
        self, record_cls: type[EventRecord], criteria: dict[str, Iterable[Any]]
    ) -> BoundEventFilter:
        abi_names = {attr_name: abi_name for abi_name, attr_name in record_cls.abi_fields.items()}
        abi_criteria = {}
        for name, values in criteria.items():
            if name not in abi_names:
                raise TypeError(f"`{record_cls.event_name}` has no field `{name}`")
            abi_criteria[abi_names[name]] = values
        return self.contract.event[record_cls.event_name].filter_by(**abi_criteria)

    def filter_events(
        self,
        record_cls: type[RecordT],
        options: None | FilterOptions = None,
        **criteria: Iterable[Any],
    ) -> EventIterator[RecordT]:
        """
        Returns an iterator over the historical logs of the event ``record_cls``.

        Each keyword argument lists the acceptable values of the indexed field with that name
        (in the record's naming); an empty collection or an omitted argument matches any value.
        """
        options = options or FilterOptions()
        event_filter = self._event_filter(record_cls, criteria)
        query = LogQuery(event_filter, from_block=options.from_block, to_block=options.to_block)
        return EventIterator(self.backend, query, partial(_decode_record, record_cls, event_filter))

    def watch_events(
        self,
        record_cls: type[RecordT],
        sink: MemoryObjectSendStream[RecordT],
        options: None | WatchOptions = None,
        **criteria: Iterable[Any],
    ) -> EventSubscription[RecordT]:
        """
        Returns a subscription forwarding the new logs of the event ``record_cls`` to ``sink``.
        See :py:meth:`filter_events` for the meaning of ``criteria``.
        """
        options = options or WatchOptions()
        event_filter = self._event_filter(record_cls, criteria)
        query = LogQuery(event_filter, from_block=options.from_block)
        return EventSubscription(
            self.backend, query, partial(_decode_record, record_cls, event_filter), sink
        )

    def parse_event(self, record_cls: type[RecordT], log_entry: LogEntry) -> RecordT:
        """
        Decodes a log entry emitted by this contract as the event ``record_cls``.
        Raises :py:class:`LogDecodingError` if that is not possible.
        """
        return _decode_record(record_cls, self._event_filter(record_cls, {}), log_entry)

    def filter_executor_updated(
        self,
        options: None | FilterOptions = None,
        *,
        old_executor: Iterable[Address] = (),
        new_executor: Iterable[Address] = (),
    ) -> EventIterator[ExecutorUpdated]:
        return self.filter_events(
            ExecutorUpdated, options, old_executor=old_executor, new_executor=new_executor
        )

    def watch_executor_updated(
        self,
        sink: MemoryObjectSendStream[ExecutorUpdated],
        options: None | WatchOptions = None,
        *,
        old_executor: Iterable[Address] = (),
        new_executor: Iterable[Address] = (),
    ) -> EventSubscription[ExecutorUpdated]:
        return self.watch_events(
            ExecutorUpdated, sink, options, old_executor=old_executor, new_executor=new_executor
        )

    def parse_executor_updated(self, log_entry: LogEntry) -> ExecutorUpdated:
        return self.parse_event(ExecutorUpdated, log_entry)

    def filter_intent_executed(
        self,
        options: None | FilterOptions = None,
        *,
        user: Iterable[Address] = (),
        input_token: Iterable[Address] = (),
        output_token: Iterable[Address] = (),
    ) -> EventIterator[IntentExecuted]:
        return self.filter_events(
            IntentExecuted, options, user=user, input_token=input_token, output_token=output_token
        )

    def watch_intent_executed(
        self,
        sink: MemoryObjectSendStream[IntentExecuted],
        options: None | WatchOptions = None,
        *,
        user: Iterable[Address] = (),
        input_token: Iterable[Address] = (),
        output_token: Iterable[Address] = (),
    ) -> EventSubscription[IntentExecuted]:
        return self.watch_events(
            IntentExecuted,
            sink,
            options,
            user=user,
            input_token=input_token,
            output_token=output_token,
        )

    def parse_intent_executed(self, log_entry: LogEntry) -> IntentExecuted:
        return self.parse_event(IntentExecuted, log_entry)

    def filter_swap_targets_updated(
        self, options: None | FilterOptions = None
    ) -> EventIterator[SwapTargetsUpdated]:
        return self.filter_events(SwapTargetsUpdated, options)

    def watch_swap_targets_updated(
        self,
        sink: MemoryObjectSendStream[SwapTargetsUpdated],
        options: None | WatchOptions = None,
    ) -> EventSubscription[SwapTargetsUpdated]:
        return self.watch_events(SwapTargetsUpdated, sink, options)

    def parse_swap_targets_updated(self, log_entry: LogEntry) -> SwapTargetsUpdated:
        return self.parse_event(SwapTargetsUpdated, log_entry)

    def filter_treasury_updated(
        self,
        options: None | FilterOptions = None,
        *,
        old_treasury: Iterable[Address] = (),
        new_treasury: Iterable[Address] = (),
    ) -> EventIterator[TreasuryUpdated]:
        return self.filter_events(
            TreasuryUpdated, options, old_treasury=old_treasury, new_treasury=new_treasury
        )

    def watch_treasury_updated(
        self,
        sink: MemoryObjectSendStream[TreasuryUpdated],
        options: None | WatchOptions = None,
        *,
        old_treasury: Iterable[Address] = (),
        new_treasury: Iterable[Address] = (),
    ) -> EventSubscription[TreasuryUpdated]:
        return self.watch_events(
            TreasuryUpdated, sink, options, old_treasury=old_treasury, new_treasury=new_treasury
        )

    def parse_treasury_updated(self, log_entry: LogEntry) -> TreasuryUpdated:
        return self.parse_event(TreasuryUpdated, log_entry)
