import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import Any, cast

import anyio

from ._backend import CallOptions, ChainBackend, LogQuery, LogSubscription, TransactOptions
from ._client_rpc import BadResponseFormat, ClientSessionRPC, LogFilter
from ._config import BackendConfig
from ._contract import BoundMethodCall
from ._contract_abi import LEGACY_ERROR, PANIC_ERROR, ContractABI, Error, FieldValues, UnknownError
from ._entities import (
    Address,
    BlockLabel,
    EstimateGasParams,
    EthCallParams,
    FilterParams,
    RPCError,
    RPCErrorCode,
    TxHash,
    TxReceipt,
    Type2Transaction,
)
from ._http_provider import HTTPProvider
from ._provider import Provider, ProviderError
from ._serialization import unstructure
from ._signer import Signer

logger = logging.getLogger(__name__)


class TransactionFailed(Exception):
    """Raised when a mined transaction has a failed status."""

    receipt: TxReceipt
    """The receipt of the failed transaction."""

    def __init__(self, receipt: TxReceipt):
        super().__init__(f"Transaction failed (receipt: {receipt})")
        self.receipt = receipt


class ContractPanicReason(Enum):
    """Reasons leading to a contract call panicking."""

    UNKNOWN = -1
    """Unknown panic code."""

    COMPILER = 0
    """Used for generic compiler inserted panics."""

    ASSERTION = 0x01
    """If you call assert with an argument that evaluates to ``false``."""

    OVERFLOW = 0x11
    """
    If an arithmetic operation results in underflow or overflow
    outside of an ``unchecked { ... }`` block.
    """

    DIVISION_BY_ZERO = 0x12
    """If you divide or modulo by zero (e.g. ``5 / 0`` or ``23 % 0``)."""

    INVALID_ENUM_VALUE = 0x21
    """If you convert a value that is too big or negative into an ``enum`` type."""

    INVALID_ENCODING = 0x22
    """If you access a storage byte array that is incorrectly encoded."""

    EMPTY_ARRAY = 0x31
    """If you call ``.pop()`` on an empty array."""

    OUT_OF_BOUNDS = 0x32
    """
    If you access an array, ``bytesN`` or an array slice at an out-of-bounds or negative index
    (i.e. ``x[i]`` where ``i >= x.length`` or ``i < 0``).
    """

    OUT_OF_MEMORY = 0x41
    """If you allocate too much memory or create an array that is too large."""

    ZERO_DEREFERENCE = 0x51
    """If you call a zero-initialized variable of internal function type."""

    @classmethod
    def from_int(cls, val: int) -> "ContractPanicReason":
        try:
            return cls(val)
        except ValueError:
            return cls.UNKNOWN


class ContractPanic(Exception):
    """A panic raised in a contract call."""

    Reason = ContractPanicReason

    reason: ContractPanicReason
    """Parsed panic reason."""

    @classmethod
    def from_code(cls, code: int) -> "ContractPanic":
        return cls(ContractPanicReason.from_int(code))

    def __init__(self, reason: ContractPanicReason):
        super().__init__(reason)
        self.reason = reason


class ContractLegacyError(Exception):
    """A raised Solidity legacy error (from ``require()`` or ``revert()``)."""

    message: str
    """The error message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ContractError(Exception):
    """A raised Solidity error (from ``revert SomeError(...)``)."""

    error: Error
    """The recognized ABI Error object."""

    data: FieldValues
    """The unpacked error data, corresponding to the ABI."""

    def __init__(self, error: Error, decoded_data: FieldValues):
        super().__init__(error.name, decoded_data)
        self.error = error
        self.data = decoded_data

    def __str__(self) -> str:
        return f"{self.error.name}{self.data.as_tuple}"


@contextmanager
def convert_errors(abi: ContractABI) -> Iterator[None]:
    try:
        yield
    except ProviderError as exc:
        if isinstance(exc.error, RPCError):
            raise decode_contract_error(abi, exc.error) from exc
        raise


def decode_contract_error(
    abi: ContractABI, exc: RPCError
) -> ContractPanic | ContractLegacyError | ContractError | ProviderError:
    if exc.data:
        try:
            error, decoded_data = abi.resolve_error(exc.data)
        except UnknownError:
            return ProviderError(exc)

        if error == PANIC_ERROR:
            return ContractPanic.from_code(decoded_data["code"])
        if error == LEGACY_ERROR:
            return ContractLegacyError(decoded_data["message"])
        return ContractError(error, decoded_data)

    # A little wonky, but there's no better way to detect legacy errors without a message.
    # Hopefully these are used very rarely.
    if exc.parsed_code == RPCErrorCode.SERVER_ERROR and exc.message == "execution reverted":
        return ContractLegacyError("")
    return ProviderError(exc)


class RPCBackend(ChainBackend):
    """
    A chain backend talking to an Ethereum node via JSON RPC.

    The methods of this class may raise the following exceptions:
    :py:class:`ProviderError`,
    :py:class:`ContractLegacyError`,
    :py:class:`ContractError`,
    :py:class:`ContractPanic`,
    :py:class:`TransactionFailed`,
    :py:class:`BadResponseFormat`.
    """

    def __init__(self, provider: Provider, config: None | BackendConfig = None):
        self._provider = provider
        self._config = config or BackendConfig()
        self._chain_id: None | int = None

    @classmethod
    def from_config(cls, config: BackendConfig) -> "RPCBackend":
        """Creates a backend with an HTTP provider pointed at ``config.rpc_url``."""
        if config.rpc_url is None:
            raise ValueError("`rpc_url` must be set in the config")
        return cls(HTTPProvider(config.rpc_url, timeout=config.request_timeout), config)

    @property
    def config(self) -> BackendConfig:
        return self._config

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[ClientSessionRPC]:
        async with self._provider.session() as provider_session:
            yield ClientSessionRPC(provider_session)

    async def _get_chain_id(self, rpc: ClientSessionRPC) -> int:
        if self._chain_id is None:
            self._chain_id = await rpc.eth_chain_id()
        return self._chain_id

    async def chain_id(self) -> int:
        """Calls the ``eth_chainId`` RPC method (the result is cached)."""
        async with self._session() as rpc:
            return await self._get_chain_id(rpc)

    async def call(self, call: BoundMethodCall, options: CallOptions) -> bytes:
        params = EthCallParams(
            to=call.contract_address,
            from_=options.sender,
            value=options.value,
            data=call.data_bytes,
        )
        async with self._session() as rpc:
            with convert_errors(call.contract_abi):
                return await rpc.eth_call(params, options.block)

    async def transact(self, call: BoundMethodCall, options: TransactOptions) -> TxHash:
        if not call.mutating:
            raise ValueError("This method is non-mutating, use a call to invoke it")
        if not call.payable and options.value.as_wei() != 0:
            raise ValueError("This method does not accept an associated payment")

        return await self._broadcast(
            options, to=call.contract_address, data=call.data_bytes, abi=call.contract_abi
        )

    async def transfer(self, address: Address, options: TransactOptions) -> TxHash:
        return await self._broadcast(options, to=address, data=None, abi=None)

    async def _broadcast(
        self,
        options: TransactOptions,
        to: Address,
        data: None | bytes,
        abi: None | ContractABI,
    ) -> TxHash:
        signer = _require_signer(options.signer)

        async with self._session() as rpc:
            chain_id = await self._get_chain_id(rpc)

            gas = options.gas
            if gas is None:
                params = EstimateGasParams(
                    from_=signer.address, to=to, value=options.value, data=data
                )
                if abi is None:
                    gas = await rpc.eth_estimate_gas(params, BlockLabel.PENDING)
                else:
                    with convert_errors(abi):
                        gas = await rpc.eth_estimate_gas(params, BlockLabel.PENDING)

            max_fee = options.max_fee_per_gas
            if max_fee is None:
                max_fee = await rpc.eth_gas_price()

            max_tip = options.max_priority_fee_per_gas
            if max_tip is None:
                max_tip = min(self._config.max_priority_fee, max_fee)

            nonce = options.nonce
            if nonce is None:
                nonce = await rpc.eth_get_transaction_count(signer.address, BlockLabel.PENDING)

            tx = Type2Transaction(
                chain_id=chain_id,
                to=to,
                value=options.value,
                gas=gas,
                max_fee_per_gas=max_fee,
                max_priority_fee_per_gas=max_tip,
                nonce=nonce,
                data=data,
            )
            signed_tx = signer.sign_transaction(_as_tx_dict(tx))
            tx_hash = await rpc.eth_send_raw_transaction(signed_tx)

        logger.debug("Sent transaction %s to %s (nonce %d)", tx_hash, to, nonce)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: TxHash, *, check: bool = False) -> TxReceipt:
        """
        Queries the transaction receipt waiting for ``receipt_poll_interval``
        (from the config) between each attempt.

        If ``check`` is ``True``, raises :py:class:`TransactionFailed`
        if the transaction was mined but failed.
        """
        async with self._session() as rpc:
            while True:
                receipt = await rpc.eth_get_transaction_receipt(tx_hash)
                if receipt is not None:
                    break
                await anyio.sleep(self._config.receipt_poll_interval)

        if check and not receipt.succeeded:
            raise TransactionFailed(receipt)
        return receipt

    @asynccontextmanager
    async def filter_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        async with self._session() as rpc:
            log_entries = await rpc.eth_get_logs(_filter_params(query))

        logger.debug("Fetched %d historical logs from %s", len(log_entries), query.address)
        subscription = LogSubscription()
        for log_entry in log_entries:
            subscription.publish(log_entry)
        subscription.finish()
        yield subscription

    @asynccontextmanager
    async def watch_logs(self, query: LogQuery) -> AsyncIterator[LogSubscription]:
        async with self._session() as rpc:
            log_filter = await rpc.eth_new_filter(_filter_params(query))
            logger.debug("Installed log filter %s for %s", log_filter.id, query.address)
            subscription = LogSubscription()
            try:
                async with anyio.create_task_group() as task_group:
                    task_group.start_soon(self._poll_filter, rpc, log_filter, subscription)
                    try:
                        yield subscription
                    finally:
                        task_group.cancel_scope.cancel()
            finally:
                subscription.finish()
                with anyio.CancelScope(shield=True):
                    await self._uninstall_filter(rpc, log_filter)

    async def _poll_filter(
        self, rpc: ClientSessionRPC, log_filter: LogFilter, subscription: LogSubscription
    ) -> None:
        while True:
            try:
                log_entries = await rpc.eth_get_filter_changes(log_filter)
            except (ProviderError, BadResponseFormat) as exc:
                logger.debug("Polling log filter %s failed: %s", log_filter.id, exc)
                subscription.finish(exc)
                return
            for log_entry in log_entries:
                subscription.publish(log_entry)
            await anyio.sleep(self._config.poll_interval)

    async def _uninstall_filter(self, rpc: ClientSessionRPC, log_filter: LogFilter) -> None:
        try:
            await rpc.eth_uninstall_filter(log_filter)
        except (ProviderError, BadResponseFormat) as exc:
            # The provider removes stale filters on its own eventually.
            logger.warning("Failed to uninstall log filter %s: %s", log_filter.id, exc)
        else:
            logger.debug("Uninstalled log filter %s", log_filter.id)


def _require_signer(signer: None | Signer) -> Signer:
    if signer is None:
        raise ValueError("A signer is required to submit a transaction")
    return signer


def _as_tx_dict(tx: Type2Transaction) -> dict[str, Any]:
    return cast("dict[str, Any]", unstructure(tx))


def _filter_params(query: LogQuery) -> FilterParams:
    return FilterParams(
        from_block=query.from_block,
        to_block=query.to_block,
        address=query.address,
        topics=query.event_filter.topics,
    )
