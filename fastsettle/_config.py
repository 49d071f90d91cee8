import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from ._entities import Amount

ENV_PREFIX = "FASTSETTLE_"


def _parse_positive_float(name: str, value: str) -> float:
    try:
        result = float(value)
    except ValueError as exc:
        raise ValueError(f"`{name}` must be a number, got {value!r}") from exc
    if result <= 0:
        raise ValueError(f"`{name}` must be positive, got {value!r}")
    return result


@dataclass(frozen=True)
class BackendConfig:
    """Settings of the JSON-RPC chain backend."""

    rpc_url: None | str = None
    """The URL of the JSON-RPC endpoint."""

    poll_interval: float = 1.0
    """Seconds between ``eth_getFilterChanges`` requests for live log subscriptions."""

    request_timeout: float = 10.0
    """The timeout of a single HTTP request, in seconds."""

    receipt_poll_interval: float = 1.0
    """Seconds between ``eth_getTransactionReceipt`` requests when waiting for a receipt."""

    max_priority_fee: Amount = field(default_factory=lambda: Amount.gwei(1))
    """The upper bound of the priority fee used when it is not given explicitly."""

    def __post_init__(self) -> None:
        for name in ("poll_interval", "request_timeout", "receipt_poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be positive, got {getattr(self, name)}")

    @classmethod
    def from_env(cls, environ: None | Mapping[str, str] = None) -> "BackendConfig":
        """
        Creates the config from ``FASTSETTLE_*`` environment variables:
        ``FASTSETTLE_RPC_URL``, ``FASTSETTLE_POLL_INTERVAL``, ``FASTSETTLE_REQUEST_TIMEOUT``,
        ``FASTSETTLE_RECEIPT_POLL_INTERVAL`` (all in seconds),
        and ``FASTSETTLE_MAX_PRIORITY_FEE_GWEI``.
        Missing variables take the default values.
        """
        if environ is None:
            environ = os.environ

        kwargs: dict[str, object] = {}
        if (rpc_url := environ.get(ENV_PREFIX + "RPC_URL")) is not None:
            kwargs["rpc_url"] = rpc_url
        for name in ("poll_interval", "request_timeout", "receipt_poll_interval"):
            env_name = ENV_PREFIX + name.upper()
            if (value := environ.get(env_name)) is not None:
                kwargs[name] = _parse_positive_float(env_name, value)

        env_name = ENV_PREFIX + "MAX_PRIORITY_FEE_GWEI"
        if (value := environ.get(env_name)) is not None:
            kwargs["max_priority_fee"] = Amount.gwei(_parse_positive_float(env_name, value))

        return cls(**kwargs)  # type: ignore[arg-type]
