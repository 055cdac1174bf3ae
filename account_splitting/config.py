"""Shared configuration loader for account-splitting runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .fees import DEFAULT_GAS_BUFFER_PERCENT


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".account_splitting.yaml"
DEFAULT_RPC_URL = "https://bsc-dataseed.binance.org/"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_RECEIPT_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 2.0

DEFAULT_CHUNK_SIZE = 300
DEFAULT_CHUNK_COOLDOWN_SECONDS = 5.0

ENV_RPC_URL = "ACCOUNT_SPLITTING_RPC_URL"
ENV_RPC_TIMEOUT = "ACCOUNT_SPLITTING_RPC_TIMEOUT"
ENV_RECEIPT_TIMEOUT = "ACCOUNT_SPLITTING_RECEIPT_TIMEOUT"

_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass(frozen=True)
class RPCConfig:
    """Connection details for an EVM JSON-RPC endpoint."""

    endpoint: str = DEFAULT_RPC_URL
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL


@dataclass(frozen=True)
class DispatchPolicy:
    """Tunable constants shared by both dispatchers.

    ``gas_buffer_percent`` is added on top of every gas estimate and
    ``chunk_cooldown_seconds`` separates consecutive batch submissions.
    """

    gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT
    chunk_cooldown_seconds: float = DEFAULT_CHUNK_COOLDOWN_SECONDS

    def __post_init__(self) -> None:
        if self.gas_buffer_percent < 0:
            raise ConfigurationError("gas_buffer_percent must not be negative")
        if self.chunk_cooldown_seconds < 0:
            raise ConfigurationError("chunk_cooldown_seconds must not be negative")


@dataclass(frozen=True)
class BatchTransferConfig:
    """Immutable run configuration for the fan-out dispatcher."""

    contract_address: str
    amount_per_wallet: int
    gas_multiplier: Decimal = Decimal("1.0001")
    fixed_gas_limit: int = 0
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_wallets: int = 0
    policy: DispatchPolicy = field(default_factory=DispatchPolicy)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk size must be greater than 0")
        if self.max_wallets < 0:
            raise ConfigurationError("max wallets must not be negative")
        if self.amount_per_wallet <= 0:
            raise ConfigurationError("amount per wallet must be greater than 0")
        if self.fixed_gas_limit < 0:
            raise ConfigurationError("fixed gas limit must not be negative")


@dataclass(frozen=True)
class SingleTransferConfig:
    """Immutable run configuration for the sequential fan-in dispatcher."""

    target_address: str
    amount_per_wallet: int
    gas_multiplier: Decimal = Decimal("1.0001")
    fixed_gas_limit: int = 0
    max_wallets: int = 0
    delay_seconds: float = 30.0
    policy: DispatchPolicy = field(default_factory=DispatchPolicy)

    def __post_init__(self) -> None:
        if self.amount_per_wallet <= 0:
            raise ConfigurationError("amount per wallet must be greater than 0")
        if self.max_wallets < 0:
            raise ConfigurationError("max wallets must not be negative")
        if self.delay_seconds < 0:
            raise ConfigurationError("delay must not be negative")
        if self.fixed_gas_limit < 0:
            raise ConfigurationError("fixed gas limit must not be negative")


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _resolve_config_path(config_path: str | Path | None) -> tuple[Path, bool]:
    explicit = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    if config_path is not None:
        return Path(config_path).expanduser(), explicit
    return _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH, explicit


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: Mapping[str, Any], name: str, path: Path) -> Mapping[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_float(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid number in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"Expected a positive number in {source}: {raw}")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def validate_endpoint(raw: str) -> str:
    """Return ``raw`` if it looks like an HTTP(S) RPC URL."""

    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    return raw


def load_rpc_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RPCConfig:
    """Load RPC configuration from overrides, environment and optional YAML."""

    env_map = os.environ if env is None else env
    path, explicit = _resolve_config_path(config_path)
    file_config = _load_config_file(path, required=explicit)
    rpc_section = _section(file_config, "rpc", path)
    override_map = dict(overrides or {})

    endpoint = _first_value(
        override_map.get("endpoint"),
        env_map.get(ENV_RPC_URL),
        rpc_section.get("endpoint"),
        default=DEFAULT_RPC_URL,
    )
    timeout = _first_value(
        _coerce_float(override_map.get("timeout"), source="overrides"),
        _coerce_float(env_map.get(ENV_RPC_TIMEOUT), source=ENV_RPC_TIMEOUT),
        _coerce_float(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        default=DEFAULT_REQUEST_TIMEOUT,
    )
    receipt_timeout = _first_value(
        _coerce_float(override_map.get("receipt_timeout"), source="overrides"),
        _coerce_float(env_map.get(ENV_RECEIPT_TIMEOUT), source=ENV_RECEIPT_TIMEOUT),
        _coerce_float(rpc_section.get("receipt_timeout"), source=f"{path} rpc.receipt_timeout"),
        default=DEFAULT_RECEIPT_TIMEOUT,
    )
    poll_interval = _first_value(
        _coerce_float(override_map.get("poll_interval"), source="overrides"),
        _coerce_float(rpc_section.get("poll_interval"), source=f"{path} rpc.poll_interval"),
        default=DEFAULT_POLL_INTERVAL,
    )

    return RPCConfig(
        endpoint=validate_endpoint(str(endpoint)),
        timeout=timeout,
        receipt_timeout=receipt_timeout,
        poll_interval=poll_interval,
    )


def load_dispatch_policy(*, config_path: str | Path | None = None) -> DispatchPolicy:
    """Read the optional ``policy`` section of the YAML config."""

    path, explicit = _resolve_config_path(config_path)
    file_config = _load_config_file(path, required=explicit)
    policy_section = _section(file_config, "policy", path)

    buffer_raw = policy_section.get("gas_buffer_percent", DEFAULT_GAS_BUFFER_PERCENT)
    cooldown_raw = policy_section.get("chunk_cooldown_seconds", DEFAULT_CHUNK_COOLDOWN_SECONDS)
    try:
        gas_buffer_percent = int(buffer_raw)
        chunk_cooldown_seconds = float(cooldown_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid policy section in {path}: {exc}") from exc

    return DispatchPolicy(
        gas_buffer_percent=gas_buffer_percent,
        chunk_cooldown_seconds=chunk_cooldown_seconds,
    )
