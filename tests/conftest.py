import pytest
from fakes import FakeBackend

from fastsettle import Address, FastSettlementV3


@pytest.fixture
def contract_address() -> Address:
    return Address(b"\xc0" * 20)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def proxy(contract_address: Address, backend: FakeBackend) -> FastSettlementV3:
    return FastSettlementV3(contract_address, backend)
