from decimal import Decimal
from pathlib import Path

import pytest

from account_splitting import config as config_module
from account_splitting.config import (
    DEFAULT_RPC_URL,
    BatchTransferConfig,
    ConfigurationError,
    DispatchPolicy,
    RPCConfig,
    SingleTransferConfig,
    load_dispatch_policy,
    load_rpc_config,
    set_default_config_path,
)


@pytest.fixture(autouse=True)
def isolate_default_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("account_splitting.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    set_default_config_path(None)
    yield
    set_default_config_path(None)


def test_load_rpc_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        rpc:
          endpoint: https://file.example/rpc
          timeout: 11
          receipt_timeout: 120
        """
    )

    env_map = {
        "ACCOUNT_SPLITTING_RPC_URL": "https://env.example/rpc",
        "ACCOUNT_SPLITTING_RPC_TIMEOUT": "9",
    }

    config = load_rpc_config(config_path=config_path, env=env_map)

    assert isinstance(config, RPCConfig)
    assert config.endpoint == "https://env.example/rpc"
    assert config.timeout == 9.0
    assert config.receipt_timeout == 120.0


def test_overrides_win_over_everything(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc:\n  endpoint: https://file.example/rpc\n")

    config = load_rpc_config(
        config_path=config_path,
        env={"ACCOUNT_SPLITTING_RPC_URL": "https://env.example/rpc"},
        overrides={"endpoint": "http://127.0.0.1:8545", "poll_interval": 0.5},
    )

    assert config.endpoint == "http://127.0.0.1:8545"
    assert config.poll_interval == 0.5


def test_none_override_falls_through_to_default() -> None:
    config = load_rpc_config(env={}, overrides={"endpoint": None})

    assert config.endpoint == DEFAULT_RPC_URL
    assert config.receipt_timeout == 300.0


def test_set_default_config_path_is_used(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("rpc:\n  endpoint: https://custom.example/\n")
    set_default_config_path(config_path)

    assert load_rpc_config(env={}).endpoint == "https://custom.example/"


def test_explicit_missing_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_rpc_config(config_path=tmp_path / "missing.yaml", env={})


def test_invalid_endpoint_rejected() -> None:
    with pytest.raises(ConfigurationError):
        load_rpc_config(env={"ACCOUNT_SPLITTING_RPC_URL": "ftp://node"})


def test_non_numeric_timeout_rejected() -> None:
    with pytest.raises(ConfigurationError):
        load_rpc_config(env={"ACCOUNT_SPLITTING_RPC_TIMEOUT": "soon"})


def test_rpc_section_must_be_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc: just-a-string\n")

    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=config_path, env={})


def test_dispatch_policy_defaults_without_file() -> None:
    policy = load_dispatch_policy()

    assert policy == DispatchPolicy(gas_buffer_percent=20, chunk_cooldown_seconds=5.0)


def test_dispatch_policy_reads_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("policy:\n  gas_buffer_percent: 35\n  chunk_cooldown_seconds: 1.5\n")

    policy = load_dispatch_policy(config_path=config_path)

    assert policy.gas_buffer_percent == 35
    assert policy.chunk_cooldown_seconds == 1.5


def test_dispatch_policy_rejects_negative_values(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("policy:\n  gas_buffer_percent: -5\n")

    with pytest.raises(ConfigurationError):
        load_dispatch_policy(config_path=config_path)


def test_run_configs_validate_their_fields() -> None:
    with pytest.raises(ConfigurationError):
        BatchTransferConfig(contract_address="0x0", amount_per_wallet=1, chunk_size=0)
    with pytest.raises(ConfigurationError):
        BatchTransferConfig(contract_address="0x0", amount_per_wallet=1, max_wallets=-1)
    with pytest.raises(ConfigurationError):
        BatchTransferConfig(contract_address="0x0", amount_per_wallet=0)
    with pytest.raises(ConfigurationError):
        SingleTransferConfig(target_address="0x0", amount_per_wallet=0)
    with pytest.raises(ConfigurationError):
        SingleTransferConfig(target_address="0x0", amount_per_wallet=1, delay_seconds=-1)


def test_run_config_defaults() -> None:
    config = BatchTransferConfig(contract_address="0x0", amount_per_wallet=1)

    assert config.chunk_size == config_module.DEFAULT_CHUNK_SIZE == 300
    assert config.gas_multiplier == Decimal("1.0001")
    assert config.policy == DispatchPolicy()
