"""Shared configuration loader for zcash-scan.

Values resolve in this order: explicit overrides, then environment variables,
then the YAML config file, then built-in defaults. The YAML file holds two
optional sections::

    scan:
      network: testnet
      viewing_key: uviewtest1...
      mode: report
    rpc:
      endpoint: http://127.0.0.1:18232
      user: rpcuser
      password: rpcpassword
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .errors import UnsupportedNetwork
from .network import Network, parse_network


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".zcash-scan.yaml"
_CONFIG_PATH_OVERRIDE: Path | None = None

_DEFAULT_RPC_PORTS = {Network.MAINNET: 8232, Network.TESTNET: 18232}
_SCAN_MODES = {"strict", "report"}


@dataclass
class ScanConfig:
    """Defaults for scanning commands."""

    network: Network = Network.MAINNET
    viewing_key: str | None = None
    mode: str = "strict"


@dataclass
class RPCConfig:
    """Connection details for a zcashd or zebrad JSON-RPC endpoint.

    Credentials are optional; zebrad serves RPC without authentication.
    """

    user: str | None = None
    password: str | None = None
    host: str = "127.0.0.1"
    port: int = 8232
    use_https: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.user is None:
            return None
        return self.user, self.password or ""


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _resolve_path(config_path: str | Path | None) -> tuple[Path, bool]:
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )
    return path, explicit_path


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


def _section(file_config: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_port(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        port = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid port in {source}: {raw}") from exc
    if not 0 < port < 65536:
        raise ConfigurationError(f"Port out of range in {source}: {raw}")
    return port


def _coerce_network(raw: Any, *, source: str) -> Network | None:
    if raw is None:
        return None
    try:
        return parse_network(raw)
    except UnsupportedNetwork as exc:
        raise ConfigurationError(f"Invalid network in {source}: {exc}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _parse_endpoint(raw: str | None) -> tuple[str | None, int | None, bool | None]:
    if not raw:
        return None, None, None
    parsed = urlparse(raw)
    if not parsed.scheme and not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    host = parsed.hostname or None
    try:
        port = parsed.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid port in RPC endpoint URL: {raw}") from exc
    use_https = parsed.scheme.lower() == "https" if parsed.scheme else None
    return host, port, use_https


def load_scan_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ScanConfig:
    """Load scanning defaults from environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    path, explicit_path = _resolve_path(config_path)
    scan_section = _section(_load_config_file(path, required=explicit_path), "scan", path)
    override_map = dict(overrides or {})

    network = _first_value(
        _coerce_network(override_map.get("network"), source="overrides"),
        _coerce_network(env_map.get("ZCASH_SCAN_NETWORK"), source="environment"),
        _coerce_network(scan_section.get("network"), source=f"{path} scan.network"),
        Network.MAINNET,
    )
    viewing_key = _first_value(
        override_map.get("viewing_key"),
        env_map.get("ZCASH_SCAN_VIEWING_KEY"),
        scan_section.get("viewing_key"),
    )
    if viewing_key is not None and not isinstance(viewing_key, str):
        raise ConfigurationError(f"Expected scan.viewing_key to be a string in {path}")
    mode = _first_value(
        override_map.get("mode"),
        env_map.get("ZCASH_SCAN_MODE"),
        scan_section.get("mode"),
        "strict",
    )
    if mode not in _SCAN_MODES:
        raise ConfigurationError(f"Invalid scan mode '{mode}', expected 'strict' or 'report'")
    return ScanConfig(network=network, viewing_key=viewing_key, mode=mode)


def load_rpc_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
    network: Network = Network.MAINNET,
) -> RPCConfig:
    """Load RPC configuration from environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    path, explicit_path = _resolve_path(config_path)
    rpc_section = _section(_load_config_file(path, required=explicit_path), "rpc", path)
    override_map = dict(overrides or {})

    env_port = _coerce_port(env_map.get("ZCASH_RPC_PORT"), source="environment")
    env_use_https = _coerce_bool(env_map.get("ZCASH_RPC_USE_HTTPS"))
    endpoint_host, endpoint_port, endpoint_use_https = _parse_endpoint(
        _first_value(
            override_map.get("endpoint"),
            env_map.get("ZCASH_RPC_URL"),
            rpc_section.get("endpoint"),
        )
    )

    resolved_user = _first_value(
        override_map.get("user"), env_map.get("ZCASH_RPC_USER"), rpc_section.get("user")
    )
    resolved_password = _first_value(
        override_map.get("password"),
        env_map.get("ZCASH_RPC_PASSWORD"),
        rpc_section.get("password"),
    )
    if resolved_password is not None and resolved_user is None:
        raise ConfigurationError("An RPC password was given without an RPC user")

    resolved_host = _first_value(
        override_map.get("host"),
        endpoint_host,
        env_map.get("ZCASH_RPC_HOST"),
        rpc_section.get("host"),
        "127.0.0.1",
    )
    resolved_port = _first_value(
        _coerce_port(override_map.get("port"), source="overrides"),
        endpoint_port,
        env_port,
        _coerce_port(rpc_section.get("port"), source=f"{path} rpc.port"),
        _DEFAULT_RPC_PORTS[network],
    )
    resolved_use_https = _first_value(
        _coerce_bool(override_map.get("use_https")),
        endpoint_use_https,
        env_use_https,
        _coerce_bool(rpc_section.get("use_https")),
        False,
    )

    return RPCConfig(
        user=resolved_user,
        password=resolved_password,
        host=resolved_host,
        port=resolved_port,
        use_https=bool(resolved_use_https),
    )
