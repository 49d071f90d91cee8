from abc import ABC, abstractmethod
from collections.abc import Mapping
from functools import cached_property
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ._entities import Address


class Signer(ABC):
    """The base class for transaction signers."""

    @property
    @abstractmethod
    def address(self) -> Address:
        """Returns the address corresponding to the signer's private key."""

    @abstractmethod
    def sign_transaction(self, tx_dict: Mapping[str, Any]) -> bytes:
        """
        Signs the given transaction and returns the RLP-packed transaction
        along with the signature.
        """


class AccountSigner(Signer):
    """A signer wrapper for ``LocalAccount`` from ``eth-account`` package."""

    def __init__(self, account: LocalAccount):
        self._account = account

    @staticmethod
    def create() -> "AccountSigner":
        """Creates an account with a random private key."""
        return AccountSigner(Account.create())

    @staticmethod
    def from_private_key(private_key: bytes | str) -> "AccountSigner":
        """Creates a signer from a private key (a bytestring or a hex string)."""
        return AccountSigner(Account.from_key(private_key))

    @property
    def account(self) -> LocalAccount:
        """Returns the account object used to create this signer."""
        return self._account

    @cached_property
    def address(self) -> Address:
        return Address.from_hex(self._account.address)

    def sign_transaction(self, tx_dict: Mapping[str, Any]) -> bytes:
        return bytes(self._account.sign_transaction(dict(tx_dict)).raw_transaction)
