from pathlib import Path

import pytest

from zcash_scan.config import (
    ConfigurationError,
    RPCConfig,
    ScanConfig,
    load_rpc_config,
    load_scan_config,
)
from zcash_scan.network import Network


def test_load_rpc_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        rpc:
          user: file_user
          password: file_pass
          host: filehost
          port: 1111
          use_https: true
          endpoint: http://filehost:2222
        """
    )

    env_map = {
        "ZCASH_RPC_USER": "env_user",
        "ZCASH_RPC_PASSWORD": "env_pass",
        "ZCASH_RPC_URL": "https://envhost:3333",
    }

    config = load_rpc_config(config_path=config_path, env=env_map)

    assert isinstance(config, RPCConfig)
    assert config.user == "env_user"
    assert config.password == "env_pass"
    assert config.host == "envhost"
    assert config.port == 3333
    assert config.use_https is True
    assert config.base_url == "https://envhost:3333"


def test_load_rpc_config_reads_yaml_when_env_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / ".zcash-scan.yaml"
    monkeypatch.setattr("zcash_scan.config.DEFAULT_CONFIG_PATH", config_path)
    config_path.write_text(
        """
        rpc:
          user: yaml_user
          password: yaml_pass
          host: yamlhost
          port: 4545
          use_https: false
        """
    )

    config = load_rpc_config(env={})

    assert config.user == "yaml_user"
    assert config.password == "yaml_pass"
    assert config.host == "yamlhost"
    assert config.port == 4545
    assert config.use_https is False
    assert config.auth == ("yaml_user", "yaml_pass")


def test_load_rpc_config_without_credentials_uses_network_port(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("zcash_scan.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")

    config = load_rpc_config(env={}, network=Network.TESTNET)

    assert config.auth is None
    assert config.host == "127.0.0.1"
    assert config.port == 18232


def test_load_rpc_config_rejects_password_without_user(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc:\n  password: secret\n")

    with pytest.raises(ConfigurationError, match="without an RPC user"):
        load_rpc_config(config_path=config_path, env={})


def test_load_rpc_config_rejects_bad_port(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc: {}\n")

    with pytest.raises(ConfigurationError, match="Invalid port"):
        load_rpc_config(config_path=config_path, env={"ZCASH_RPC_PORT": "eighty"})
    with pytest.raises(ConfigurationError, match="out of range"):
        load_rpc_config(config_path=config_path, env={"ZCASH_RPC_PORT": "70000"})


def test_explicit_config_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_scan_config(config_path=tmp_path / "nope.yaml", env={})


def test_load_scan_config_layers(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        scan:
          network: testnet
          viewing_key: uviewtest1fromfile
          mode: report
        """
    )

    from_file = load_scan_config(config_path=config_path, env={})
    assert from_file == ScanConfig(
        network=Network.TESTNET, viewing_key="uviewtest1fromfile", mode="report"
    )

    from_env = load_scan_config(
        config_path=config_path,
        env={"ZCASH_SCAN_NETWORK": "mainnet", "ZCASH_SCAN_MODE": "strict"},
    )
    assert from_env.network is Network.MAINNET
    assert from_env.mode == "strict"
    assert from_env.viewing_key == "uviewtest1fromfile"

    overridden = load_scan_config(
        config_path=config_path,
        env={"ZCASH_SCAN_VIEWING_KEY": "uview1fromenv"},
        overrides={"viewing_key": "uview1flag"},
    )
    assert overridden.viewing_key == "uview1flag"


def test_load_scan_config_rejects_unknown_network_and_mode(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("scan: {}\n")

    with pytest.raises(ConfigurationError, match="Invalid network"):
        load_scan_config(config_path=config_path, env={"ZCASH_SCAN_NETWORK": "regtest"})
    with pytest.raises(ConfigurationError, match="Invalid scan mode"):
        load_scan_config(config_path=config_path, env={"ZCASH_SCAN_MODE": "lenient"})
