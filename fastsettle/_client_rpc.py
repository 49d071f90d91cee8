from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, TypeVar, cast

from compages import StructuringError

from ._entities import (
    Address,
    Amount,
    Block,
    BlockLabel,
    EstimateGasParams,
    EthCallParams,
    FilterParams,
    LogEntry,
    TxHash,
    TxReceipt,
)
from ._provider import ProviderSession
from ._serialization import structure, unstructure


@dataclass
class LogFilter:
    """
    A log filter created on a remote provider.

    Expires after some time subject to the provider's settings.
    """

    id: int


class BadResponseFormat(Exception):
    """Raised if the RPC provider returned an unexpectedly formatted response."""


@contextmanager
def convert_errors(method_name: str) -> Iterator[None]:
    try:
        yield
    except StructuringError as exc:
        raise BadResponseFormat(f"{method_name}: {exc}") from exc


RetType = TypeVar("RetType")


async def rpc_call(
    provider_session: ProviderSession, method_name: str, ret_type: type[RetType], *args: Any
) -> RetType:
    """Catches various response formatting errors and returns them in a unified way."""
    with convert_errors(method_name):
        result = await provider_session.rpc(method_name, *(unstructure(arg) for arg in args))
        return structure(ret_type, result)


class ClientSessionRPC:
    """
    The hub for methods which directly correspond to Ethereum RPC calls.

    The methods of this class may raise
    :py:class:`ProviderError` (coming from the lower level)
    or :py:class:`BadResponseFormat` (failed to deserialize the response into the expected type).
    """

    def __init__(self, provider_session: ProviderSession):
        self._provider_session = provider_session

    async def eth_chain_id(self) -> int:
        """Returns the chain ID used for signing replay-protected transactions."""
        return await rpc_call(self._provider_session, "eth_chainId", int)

    async def eth_get_transaction_receipt(self, tx_hash: TxHash) -> None | TxReceipt:
        """
        Returns the receipt of a transaction by transaction hash.

        .. note::

            That the receipt is not available for pending transactions.
        """
        # Need an explicit cast, mypy doesn't work with union types correctly.
        return cast(
            None | TxReceipt,
            await rpc_call(
                self._provider_session,
                "eth_getTransactionReceipt",
                None | TxReceipt,  # type: ignore[arg-type]
                tx_hash,
            ),
        )

    async def eth_get_transaction_count(
        self, address: Address, block: Block = BlockLabel.LATEST
    ) -> int:
        """Returns the number of transactions sent from an address."""
        return await rpc_call(
            self._provider_session, "eth_getTransactionCount", int, address, block
        )

    async def eth_call(self, params: EthCallParams, block: Block = BlockLabel.LATEST) -> bytes:
        """
        Executes a new message call immediately without creating a transaction on the blockchain.
        Returns the packed output.
        """
        return await rpc_call(self._provider_session, "eth_call", bytes, params, block)

    async def eth_send_raw_transaction(self, tx_bytes: bytes) -> TxHash:
        """Creates new message call transaction or a contract creation for signed transactions."""
        return await rpc_call(self._provider_session, "eth_sendRawTransaction", TxHash, tx_bytes)

    async def eth_estimate_gas(self, params: EstimateGasParams, block: Block) -> int:
        """
        Generates and returns an estimate of how much gas is necessary
        to allow the transaction to complete.
        The transaction will not be added to the blockchain.
        """
        return await rpc_call(self._provider_session, "eth_estimateGas", int, params, block)

    async def eth_gas_price(self) -> Amount:
        """
        Returns an estimate of the current price per gas in wei,
        according to a provider-specific algorithm.
        """
        return await rpc_call(self._provider_session, "eth_gasPrice", Amount)

    async def eth_get_logs(self, params: FilterParams) -> tuple[LogEntry, ...]:
        """Returns an array of all logs matching a given filter object."""
        return await rpc_call(
            self._provider_session,
            "eth_getLogs",
            tuple[LogEntry, ...],  # type: ignore[arg-type]
            params,
        )

    async def eth_new_filter(self, params: FilterParams) -> LogFilter:
        """
        Creates a filter object, based on filter options,
        to notify when the state changes (logs).
        """
        result = await rpc_call(self._provider_session, "eth_newFilter", int, params)
        return LogFilter(id=result)

    async def eth_get_filter_changes(self, filter_: LogFilter) -> tuple[LogEntry, ...]:
        """Polling method for a filter, returns an array of logs which occurred since last poll."""
        return await rpc_call(
            self._provider_session,
            "eth_getFilterChanges",
            tuple[LogEntry, ...],  # type: ignore[arg-type]
            filter_.id,
        )

    async def eth_uninstall_filter(self, filter_: LogFilter) -> bool:
        """
        Uninstalls a filter with given id. Should always be called when watch is no longer needed.

        Returns ``true`` if there was an active filter with a given filter ID.
        """
        return await rpc_call(self._provider_session, "eth_uninstallFilter", bool, filter_.id)
