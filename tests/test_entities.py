import os

import pytest

from fastsettle import Address, Amount, LogTopic, TxHash


def test_amount() -> None:
    assert Amount.wei(100).as_wei() == 100
    assert Amount.gwei(1.5).as_wei() == 1_500_000_000
    assert Amount.ether(2).as_ether() == 2
    assert Amount.gwei(3).as_gwei() == 3

    assert Amount(1) + Amount(2) == Amount(3)
    assert Amount(3) - Amount(2) == Amount(1)
    assert Amount(3) * 2 == Amount(6)
    assert Amount(1) < Amount(2)
    assert Amount(2) >= Amount(2)
    assert min(Amount(5), Amount(3)) == Amount(3)

    with pytest.raises(TypeError, match="Amount must be an integer, got float"):
        Amount(1.5)  # type: ignore[arg-type]
    with pytest.raises(TypeError, match="Amount must be an integer, got bool"):
        Amount(True)
    with pytest.raises(ValueError, match="Amount must be non-negative, got -1"):
        Amount(-1)
    with pytest.raises(TypeError, match="Expected an integer, got float"):
        Amount(1) * 1.5  # type: ignore[operator]
    with pytest.raises(TypeError, match="Incompatible types: Amount and int"):
        Amount(1) + 1  # noqa: B018


def test_address() -> None:
    random_addr = os.urandom(20)
    addr = Address(random_addr)
    assert bytes(addr) == random_addr
    assert Address.from_hex(addr.checksum) == addr
    assert Address.from_hex(addr.checksum.lower()) == addr
    assert str(addr) == addr.checksum
    assert repr(addr) == f"Address.from_hex({addr.checksum})"
    assert hash(addr) == hash(Address(random_addr))

    with pytest.raises(ValueError, match="Address must be 20 bytes long, got 19"):
        Address(random_addr[:-1])
    with pytest.raises(TypeError, match="Address must be a bytestring, got str"):
        Address(addr.checksum)  # type: ignore[arg-type]


def test_typed_data_is_strict() -> None:
    data = os.urandom(32)
    assert TxHash(data) == TxHash(data)
    assert repr(TxHash(data)) == f'TxHash(bytes.fromhex("{data.hex()}"))'
    with pytest.raises(TypeError, match="Incompatible types: TxHash and LogTopic"):
        TxHash(data) == LogTopic(data)  # noqa: B015
