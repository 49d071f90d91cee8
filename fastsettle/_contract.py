from typing import Any

from ._contract_abi import (
    ContractABI,
    Event,
    EventFilter,
    FieldValues,
    LogDecodingError,
    Method,
    Methods,
)
from ._entities import Address, LogEntry, LogTopic


class BoundMethod:
    """A regular method bound to a specific contract's address."""

    def __init__(self, contract_abi: ContractABI, contract_address: Address, method: Method):
        self._contract_abi = contract_abi
        self._contract_address = contract_address
        self.method = method

    def __call__(self, *args: Any, **kwargs: Any) -> "BoundMethodCall":
        """Returns a contract call with encoded arguments bound to a specific address."""
        call = self.method(*args, **kwargs)
        return BoundMethodCall(
            self._contract_abi, self.method, self._contract_address, call.data_bytes
        )


class BoundMethodCall:
    """A regular method call with encoded arguments bound to a specific contract address."""

    contract_abi: ContractABI
    """The corresponding contract's ABI"""

    contract_address: Address
    """The contract address."""

    payable: bool
    """Whether this call is payable."""

    mutating: bool
    """Whether this call may mutate the contract state."""

    data_bytes: bytes
    """Encoded call arguments with the selector."""

    def __init__(
        self,
        contract_abi: ContractABI,
        method: Method,
        contract_address: Address,
        data_bytes: bytes,
    ):
        self.contract_abi = contract_abi
        self.method = method
        self.contract_address = contract_address
        self.data_bytes = data_bytes
        self.payable = method.payable
        self.mutating = method.mutating

    def decode_output(self, output_bytes: bytes) -> Any:
        """Decodes contract output packed into the bytestring."""
        return self.method.decode_output(output_bytes)

    def __repr__(self) -> str:
        return (
            f"BoundMethodCall({self.method.name}, address={self.contract_address.checksum}, "
            f"data=0x{self.data_bytes.hex()})"
        )


class BoundEvent:
    """An event creation call with encoded topics bound to a specific contract address."""

    def __init__(self, contract_address: Address, event: Event):
        self.contract_address = contract_address
        self.event = event

    def __call__(self, *args: Any, **kwargs: Any) -> "BoundEventFilter":
        """Returns an event filter with encoded arguments bound to a specific address."""
        return BoundEventFilter(self.contract_address, self.event, self.event(*args, **kwargs))

    def filter_by(self, **criteria: Any) -> "BoundEventFilter":
        """
        Returns an event filter bound to a specific address,
        see :py:meth:`Event.filter_by` for the meaning of the arguments.
        """
        return BoundEventFilter(
            self.contract_address, self.event, self.event.filter_by(**criteria)
        )


class BoundEventFilter:
    """An event filter bound to a specific contract address."""

    contract_address: Address
    """The contract address."""

    topics: tuple[None | tuple[LogTopic, ...], ...]
    """Encoded topics for filtering."""

    def __init__(self, contract_address: Address, event: Event, event_filter: EventFilter):
        self.contract_address = contract_address
        self.event_filter = event_filter
        self.topics = event_filter.topics
        self.event = event

    def matches(self, log_entry: LogEntry) -> bool:
        """Returns ``True`` if the log entry would be selected by this filter."""
        return log_entry.address == self.contract_address and self.event_filter.matches(
            log_entry.topics
        )

    def decode_log_entry(self, log_entry: LogEntry) -> FieldValues:
        """
        Decodes the log entry's fields.
        Raises :py:class:`LogDecodingError` if the log does not originate
        from the bound contract or does not match the event.
        """
        if log_entry.address != self.contract_address:
            raise LogDecodingError("Log entry originates from a different contract")
        return self.event.decode_log_entry(log_entry)


class DeployedContract:
    """A deployed contract (ABI and address)."""

    abi: ContractABI
    """Contract's ABI."""

    address: Address
    """Contract's address."""

    method: Methods[BoundMethod]
    """Contract's methods bound to the address."""

    event: Methods[BoundEvent]
    """Contract's events bound to the address."""

    def __init__(self, abi: ContractABI, address: Address):
        self.abi = abi
        self.address = address

        self.method = Methods(
            {method.name: BoundMethod(self.abi, self.address, method) for method in self.abi.method}
        )
        self.event = Methods(
            {event.name: BoundEvent(self.address, event) for event in self.abi.event}
        )
